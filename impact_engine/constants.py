"""
Shared vocabulary of the impact engine: material categories, impact keys and provenance tiers.
"""

# --- Material categories ---
ENERGY = 'energy'
TRANSPORT = 'transport'
COMMUTING = 'commuting'
WASTE = 'waste'
MANUFACTURING_MATERIAL = 'manufacturing_material'

MATERIAL_CATEGORY_CHOICES = [
    (ENERGY, 'Energy'),
    (TRANSPORT, 'Transport'),
    (COMMUTING, 'Commuting'),
    (WASTE, 'Waste'),
    (MANUFACTURING_MATERIAL, 'Manufacturing material'),
]

# Categories eligible for the hybrid (government factor + proxy) path
HYBRID_CATEGORIES = (ENERGY, TRANSPORT, COMMUTING)

# --- Impact keys (per base unit of the line item) ---
CLIMATE_CHANGE = 'climate_change'
CLIMATE_FOSSIL = 'climate_fossil'
CLIMATE_BIOGENIC = 'climate_biogenic'
CLIMATE_DLUC = 'climate_dluc'

CLIMATE_KEYS = (CLIMATE_CHANGE, CLIMATE_FOSSIL, CLIMATE_BIOGENIC, CLIMATE_DLUC)

IMPACT_KEYS = CLIMATE_KEYS + (
    'water_consumption',
    'water_scarcity',
    'land_use',
    'waste',
    'ozone_depletion',
    'ionising_radiation',
    'photochemical_ozone_formation',
    'particulate_matter',
    'human_toxicity_cancer',
    'human_toxicity_non_cancer',
    'acidification',
    'eutrophication_freshwater',
    'eutrophication_marine',
    'eutrophication_terrestrial',
    'ecotoxicity_freshwater',
    'resource_use_fossils',
    'resource_use_minerals_metals',
)

# --- Provenance tiers ---
PROVENANCE_VERIFIED_SUPPLIER = 'verified_supplier'
PROVENANCE_ORGANISATION_OVERRIDE = 'organisation_override'
PROVENANCE_INDUSTRY_PROXY = 'industry_proxy'
PROVENANCE_HYBRID = 'hybrid'
PROVENANCE_NONE = 'none'

PROVENANCE_CHOICES = [
    (PROVENANCE_VERIFIED_SUPPLIER, 'Verified supplier'),
    (PROVENANCE_ORGANISATION_OVERRIDE, 'Organisation override'),
    (PROVENANCE_INDUSTRY_PROXY, 'Industry proxy'),
    (PROVENANCE_HYBRID, 'Hybrid'),
    (PROVENANCE_NONE, 'None (unresolved)'),
]

QUALITY_HIGH = 'high'
QUALITY_MEDIUM = 'medium'
QUALITY_LOW = 'low'

QUALITY_CHOICES = [
    (QUALITY_HIGH, 'High'),
    (QUALITY_MEDIUM, 'Medium'),
    (QUALITY_LOW, 'Low'),
]

GLOBAL_GEOGRAPHY = 'GLO'


def normalize_material_name(name):
    """ Lower-case a material name and collapse runs of whitespace. """
    return ' '.join((name or '').lower().split())
