"""
Material category classification from an explicit, versioned rule table.

The built-in table below is the fallback; an administrator can load rules into
MaterialCategoryRule and the newest active version found there wins.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

from ..conf import get_setting
from ..constants import (
    ENERGY, TRANSPORT, COMMUTING, WASTE, MANUFACTURING_MATERIAL,
    normalize_material_name,
)
from ..models.reference import MaterialCategoryRule

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY = MANUFACTURING_MATERIAL


@dataclass(frozen=True)
class CategoryRule:
    pattern: str
    category: str
    priority: int


# Energy first, then freight transport, then employee travel, then waste.
DEFAULT_CATEGORY_RULES = (
    CategoryRule('electricity', ENERGY, 400),
    CategoryRule('natural gas', ENERGY, 400),
    CategoryRule('diesel', ENERGY, 400),
    CategoryRule('coal', ENERGY, 400),
    CategoryRule('fuel', ENERGY, 400),
    CategoryRule('heating', ENERGY, 400),
    CategoryRule('transport', TRANSPORT, 300),
    CategoryRule('hgv', TRANSPORT, 300),
    CategoryRule('lorry', TRANSPORT, 300),
    CategoryRule('truck', TRANSPORT, 300),
    CategoryRule('freight', TRANSPORT, 300),
    CategoryRule('shipping', TRANSPORT, 300),
    CategoryRule('commut', COMMUTING, 200),
    CategoryRule('passenger car', COMMUTING, 200),
    CategoryRule('bus', COMMUTING, 200),
    CategoryRule('rail passenger', COMMUTING, 200),
    CategoryRule('air travel', COMMUTING, 200),
    CategoryRule('underground', COMMUTING, 200),
    CategoryRule('metro', COMMUTING, 200),
    CategoryRule('waste', WASTE, 100),
    CategoryRule('disposal', WASTE, 100),
    CategoryRule('landfill', WASTE, 100),
)


def load_category_rules(version: Optional[str] = None) -> List[CategoryRule]:
    """
    Return the rule table ordered by descending priority.

    Active database rules of the requested version (or the newest version present)
    take precedence over the built-in table.
    """
    queryset = MaterialCategoryRule.objects.filter(is_active=True)
    if version is None:
        version = queryset.order_by('-version').values_list('version', flat=True).first()
    if version is not None:
        rows = list(queryset.filter(version=version).order_by('-priority', 'pk'))
        if rows:
            return [CategoryRule(normalize_material_name(r.pattern), r.category, r.priority) for r in rows]
        logger.debug(f"No active category rules stored for version {version}, using built-in table")
    return sorted(DEFAULT_CATEGORY_RULES, key=lambda rule: -rule.priority)


def classify_material(name: str, rules: Optional[Iterable[CategoryRule]] = None) -> str:
    """ Category of the first rule (by priority) whose pattern occurs in the material name. """
    if rules is None:
        rules = load_category_rules()
    else:
        rules = sorted(rules, key=lambda rule: -rule.priority)
    normalized = normalize_material_name(name)
    for rule in rules:
        if rule.pattern in normalized:
            logger.debug(f"Classified '{name}' as {rule.category} via pattern '{rule.pattern}'")
            return rule.category
    return DEFAULT_CATEGORY


def install_default_rules(version: Optional[str] = None) -> int:
    """ Store the built-in table as database rules under the given version. Returns rows created. """
    version = version or get_setting('CATEGORY_RULES_VERSION')
    created = 0
    for rule in DEFAULT_CATEGORY_RULES:
        _, was_created = MaterialCategoryRule.objects.update_or_create(
            version=version,
            pattern=rule.pattern,
            defaults={'category': rule.category, 'priority': rule.priority, 'is_active': True},
        )
        created += int(was_created)
    return created
