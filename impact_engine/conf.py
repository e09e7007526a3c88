from django.conf import settings

DEFAULTS = {
    'RECALCULATION_MAX_ATTEMPTS': 3,
    'RECALCULATION_RETRY_BACKOFF_MINUTES': 5,
    'RECALCULATION_DEFAULT_PRIORITY': 5,
    'STALE_JOB_TIMEOUT_MINUTES': 30,
    'CLAIM_CONTENTION_RETRIES': 5,
    'DEFAULT_SCOPE1_SHARE': '0.35',
    'PRODUCTION_MIX_TOLERANCE': '0.0001',
    'ORGANISATION_OVERRIDE_CONFIDENCE': 70,
    'HYBRID_CONFIDENCE': 60,
    'VERIFIED_SUPPLIER_CONFIDENCE': 95,
    'CLIMATE_FOSSIL_SHARE': 0.85,
    'CATEGORY_RULES_VERSION': '2025.1',
    'AUTO_AGGREGATE_ON_RESOLVE': True,
    'SINGLE_SCORE_ENABLED': True,
    'AUTO_RESCORE_ON_WEIGHTING_CHANGE': True,
}


def get_setting(name):
    """ Read an engine tunable from settings.IMPACT_ENGINE, falling back to DEFAULTS. """
    overrides = getattr(settings, 'IMPACT_ENGINE', None) or {}
    if name in overrides:
        return overrides[name]
    return DEFAULTS[name]
