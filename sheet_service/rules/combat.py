from typing import Dict, Mapping, Optional

from ..errors import ConflictError, ErrorContext, ValidationError
from ..models import BaseValue, CombatValues, Skill
from .catalog import MELEE, RANGED, combat_category_of


def _effective(base_values: Mapping[str, BaseValue], name: str) -> int:
    base_value = base_values[name]
    return base_value.current + base_value.mod


def calculate_combat_values(
    skill_name: str,
    base_values: Mapping[str, BaseValue],
    combat_values: CombatValues,
    old_skill: Optional[Skill] = None,
    new_skill: Optional[Skill] = None,
    attack_increase: int = 0,
    parade_increase: int = 0,
) -> CombatValues:
    """
    Recompute the combat values of one combat skill.

    A change of the skill's ``current`` or ``mod`` grants (or takes back) the
    same number of available points. Every skilled attack or parade point
    spends one available point.

    Raises:
        ValidationError: ``skill_name`` is not a combat skill
        ConflictError: not enough available points
    """
    combat_category = combat_category_of(skill_name)
    if combat_category is None:
        raise ValidationError(f"'{skill_name}' is not a combat skill", ErrorContext(field=skill_name))

    available = combat_values.available_points
    if old_skill is not None and new_skill is not None:
        available += (new_skill.current - old_skill.current) + (new_skill.mod - old_skill.mod)

    available -= attack_increase + parade_increase
    if available < 0:
        raise ConflictError(
            f"Not enough points to increase combat values of '{skill_name}'",
            ErrorContext(field=skill_name, metadata={"available_points": available + attack_increase + parade_increase}),
        )

    skilled_attack = combat_values.skilled_attack_value + attack_increase
    skilled_parade = combat_values.skilled_parade_value + parade_increase

    update = {
        "available_points": available,
        "skilled_attack_value": skilled_attack,
        "skilled_parade_value": skilled_parade,
    }
    if combat_category == MELEE:
        update["attack_value"] = skilled_attack + _effective(base_values, "attackBaseValue")
        update["parade_value"] = skilled_parade + _effective(base_values, "paradeBaseValue")
    else:
        update["attack_value"] = skilled_attack + _effective(base_values, "rangedAttackBaseValue")
    return combat_values.model_copy(update=update)


def recalculate_all_combat_values(
    base_values: Mapping[str, BaseValue],
    combat_values: Mapping[str, Mapping[str, CombatValues]],
) -> Dict[str, Dict[str, CombatValues]]:
    """Return the combat values whose attack or parade changed, grouped by melee/ranged."""
    changed: Dict[str, Dict[str, CombatValues]] = {}
    for combat_category in (MELEE, RANGED):
        for skill_name, values in combat_values.get(combat_category, {}).items():
            updated = calculate_combat_values(skill_name, base_values, values)
            if updated != values:
                changed.setdefault(combat_category, {})[skill_name] = updated
    return changed
