import math
from typing import Callable, Dict, Mapping, Optional

from ..models import Attribute, BaseValue


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _term(attributes: Mapping[str, Attribute], name: str) -> int:
    attribute = attributes[name]
    return attribute.current + attribute.mod


def _health_points(a: Mapping[str, Attribute]) -> int:
    return 2 * _term(a, "endurance") + _term(a, "strength") + 20


def _mental_health(a: Mapping[str, Attribute]) -> int:
    return _term(a, "courage") + 2 * _term(a, "mentalResilience") + 8


def _initiative(a: Mapping[str, Attribute]) -> int:
    return round_half_up((2 * _term(a, "courage") + _term(a, "dexterity") + _term(a, "endurance")) / 5)


def _attack(a: Mapping[str, Attribute]) -> int:
    return round_half_up(10 * (_term(a, "courage") + _term(a, "dexterity") + _term(a, "strength")) / 5)


def _parade(a: Mapping[str, Attribute]) -> int:
    return round_half_up(10 * (_term(a, "endurance") + _term(a, "dexterity") + _term(a, "strength")) / 5)


def _ranged_attack(a: Mapping[str, Attribute]) -> int:
    return round_half_up(10 * (_term(a, "concentration") + _term(a, "dexterity") + _term(a, "strength")) / 5)


FORMULAS: Dict[str, Callable[[Mapping[str, Attribute]], int]] = {
    "healthPoints": _health_points,
    "mentalHealth": _mental_health,
    "initiativeBaseValue": _initiative,
    "attackBaseValue": _attack,
    "paradeBaseValue": _parade,
    "rangedAttackBaseValue": _ranged_attack,
}


def derive_base_value(name: str, attributes: Mapping[str, Attribute]) -> Optional[int]:
    formula = FORMULAS.get(name)
    if formula is None:
        return None
    return formula(attributes)


def derive_base_values(attributes: Mapping[str, Attribute]) -> Dict[str, int]:
    return {name: formula(attributes) for name, formula in FORMULAS.items()}


def recalculate_base_values(
    base_values: Mapping[str, BaseValue], attributes: Mapping[str, Attribute]
) -> Dict[str, BaseValue]:
    """Return updated copies of the formula-derived base values that changed."""
    changed: Dict[str, BaseValue] = {}
    for name, base_value in base_values.items():
        if base_value.by_formula is None:
            continue
        new_formula_value = derive_base_value(name, attributes)
        if new_formula_value is None or new_formula_value == base_value.by_formula:
            continue
        changed[name] = base_value.model_copy(
            update={
                "current": base_value.current + new_formula_value - base_value.by_formula,
                "by_formula": new_formula_value,
            }
        )
    return changed
