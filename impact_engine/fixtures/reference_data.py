"""
Seed reference data: EF 3.1 impact categories with normalisation values and default weights,
plus a small set of demonstration reference factors and proxies.
"""

DEFAULT_WEIGHTING_SET_NAME = "EF 3.1 Default"
DEFAULT_WEIGHTING_SET_VERSION = "3.1"

# (code, name, impact_key, unit, normalisation value per person per year, default weight)
EF31_CATEGORIES = [
    ("CC", "Climate change", "climate_change", "kg CO2 eq", 8090, 0.2106),
    ("OD", "Ozone depletion", "ozone_depletion", "kg CFC-11 eq", 0.0536, 0.0631),
    ("IR", "Ionising radiation", "ionising_radiation", "kBq U-235 eq", 4220, 0.0501),
    ("POF", "Photochemical ozone formation", "photochemical_ozone_formation", "kg NMVOC eq", 40.6, 0.0478),
    ("PM", "Particulate matter", "particulate_matter", "disease incidence", 0.000594, 0.0896),
    ("HTC", "Human toxicity, cancer", "human_toxicity_cancer", "CTUh", 1.69e-5, 0.0213),
    ("HTNC", "Human toxicity, non-cancer", "human_toxicity_non_cancer", "CTUh", 2.33e-4, 0.0184),
    ("AC", "Acidification", "acidification", "mol H+ eq", 55.5, 0.0620),
    ("EUF", "Eutrophication, freshwater", "eutrophication_freshwater", "kg P eq", 1.61, 0.0280),
    ("EUM", "Eutrophication, marine", "eutrophication_marine", "kg N eq", 19.5, 0.0296),
    ("EUT", "Eutrophication, terrestrial", "eutrophication_terrestrial", "mol N eq", 177, 0.0371),
    ("ETF", "Ecotoxicity, freshwater", "ecotoxicity_freshwater", "CTUe", 17500, 0.0192),
    ("LU", "Land use", "land_use", "pt", 819000, 0.0794),
    ("WU", "Water use", "water_scarcity", "m3 world eq deprived", 11500, 0.0851),
    ("RUF", "Resource use, fossils", "resource_use_fossils", "MJ", 65000, 0.0832),
    ("RUM", "Resource use, minerals and metals", "resource_use_minerals_metals", "kg Sb eq", 0.0636, 0.0755),
]

# Demonstration government factors (climate only); values are illustrative
SAMPLE_EMISSION_FACTORS = [
    {
        'name': "Grid Electricity - UK - 2024", 'source': "DEFRA", 'year': 2024,
        'category': "energy", 'sub_category': "Grid Electricity", 'activity_unit': "kWh",
        'value': "0.20705", 'factor_unit': "kgCO2e/kWh", 'region': "UK", 'scope': "2",
        'proxy_category': "electricity_grid",
    },
    {
        'name': "Natural Gas - UK - 2024", 'source': "DEFRA", 'year': 2024,
        'category': "energy", 'sub_category': "Natural Gas", 'activity_unit': "kWh",
        'value': "0.18290", 'factor_unit': "kgCO2e/kWh", 'region': "UK", 'scope': "1",
        'proxy_category': "natural_gas",
    },
    {
        'name': "Diesel - ALL - 2024", 'source': "DEFRA", 'year': 2024,
        'category': "energy", 'sub_category': "Diesel", 'activity_unit': "litres",
        'value': "2.51279", 'factor_unit': "kgCO2e/litre", 'region': "ALL", 'scope': "1",
        'proxy_category': "diesel",
    },
    {
        'name': "HGV Freight - ALL - 2024", 'source': "DEFRA", 'year': 2024,
        'category': "transport", 'sub_category': "HGV", 'activity_unit': "km",
        'value': "0.86000", 'factor_unit': "kgCO2e/km", 'region': "ALL", 'scope': "3",
        'proxy_category': "road_freight",
    },
]

# Proxies the sample factors point at for non-climate data (hybrid resolution)
SAMPLE_PROXIES = [
    {
        'name': "market for electricity, medium voltage", 'category': "electricity_grid", 'unit': "kWh",
        'geography': "GB", 'data_quality_score': "3.0", 'source': "Ecoinvent 3.10",
        'impacts': {'climate_change': 0.268, 'land_use': 0.0108, 'water_scarcity': 0.0254, 'acidification': 0.00052},
    },
    {
        'name': "market for natural gas, high pressure", 'category': "natural_gas", 'unit': "kWh",
        'geography': "Europe", 'data_quality_score': "3.0", 'source': "Ecoinvent 3.10",
        'impacts': {'climate_change': 0.0354, 'land_use': 0.0021, 'water_scarcity': 0.0009, 'acidification': 0.00011},
    },
    {
        'name': "market for diesel", 'category': "diesel", 'unit': "l",
        'geography': "Europe", 'data_quality_score': "3.0", 'source': "Ecoinvent 3.10",
        'impacts': {'climate_change': 0.621, 'land_use': 0.0312, 'water_scarcity': 0.0473, 'acidification': 0.00382},
    },
    {
        'name': "transport, freight, lorry >32 metric ton", 'category': "road_freight", 'unit': "km",
        'geography': "RER", 'data_quality_score': "2.5", 'source': "Ecoinvent 3.10",
        'impacts': {'climate_change': 0.947, 'land_use': 0.0187, 'water_scarcity': 0.0061, 'acidification': 0.00236},
    },
]
