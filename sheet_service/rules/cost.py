from typing import Dict, Optional

from ..models import CostCategory, LearningMethod

# Upper bounds (exclusive) of the skill value bands
SKILL_THRESHOLDS = (50, 75, 99999)

# COST_MATRIX[category][band]
COST_MATRIX = (
    (0, 0, 0),
    (0.5, 1, 2),
    (1, 2, 3),
    (2, 3, 4),
    (3, 4, 5),
)

SKILL_ACTIVATION_COSTS = (0, 40, 50, 60, 70)

ATTRIBUTE_INCREASE_COST = 1

DEFAULT_SKILL_COST_CATEGORY = CostCategory.CAT_2
DEFAULT_COMBAT_SKILL_COST_CATEGORY = CostCategory.CAT_3

_LEARNING_METHOD_OFFSETS: Dict[LearningMethod, int] = {
    LearningMethod.LOW_PRICED: -1,
    LearningMethod.NORMAL: 0,
    LearningMethod.EXPENSIVE: 1,
}

_COST_CATEGORY_TABLE: Dict[str, CostCategory] = {
    "CAT_0": CostCategory.CAT_0,
    "CAT_1": CostCategory.CAT_1,
    "CAT_2": CostCategory.CAT_2,
    "CAT_3": CostCategory.CAT_3,
    "CAT_4": CostCategory.CAT_4,
}

_LEARNING_METHOD_TABLE: Dict[str, LearningMethod] = {
    "FREE": LearningMethod.FREE,
    "LOW_PRICED": LearningMethod.LOW_PRICED,
    "NORMAL": LearningMethod.NORMAL,
    "EXPENSIVE": LearningMethod.EXPENSIVE,
}


def parse_cost_category(value: Optional[str]) -> Optional[CostCategory]:
    if value is None:
        return None
    return _COST_CATEGORY_TABLE.get(value.strip().upper())


def parse_learning_method(value: Optional[str]) -> Optional[LearningMethod]:
    if value is None:
        return None
    return _LEARNING_METHOD_TABLE.get(value.strip().upper())


def _clamp_category(value: int) -> CostCategory:
    return CostCategory(max(CostCategory.CAT_0, min(CostCategory.CAT_4, value)))


def _threshold_band(skill_value: int) -> int:
    for index, threshold in enumerate(SKILL_THRESHOLDS):
        if skill_value < threshold:
            return index
    return len(SKILL_THRESHOLDS) - 1


def skill_increase_cost(skill_value: int, cost_category: int) -> float:
    """Points needed to raise a skill from ``skill_value`` by one."""
    category = _clamp_category(int(cost_category))
    return COST_MATRIX[category][_threshold_band(skill_value)]


def skill_activation_cost(cost_category: int) -> int:
    return SKILL_ACTIVATION_COSTS[_clamp_category(int(cost_category))]


def adjust_cost_category(default_category: int, learning_method: LearningMethod) -> CostCategory:
    """Shift a skill's default category by the chosen learning method.

    ``FREE`` always yields category 0; every other method moves the default
    by its offset and the result is clamped into the valid range.
    """
    if learning_method == LearningMethod.FREE:
        return CostCategory.CAT_0
    return _clamp_category(int(default_category) + _LEARNING_METHOD_OFFSETS[learning_method])


def default_cost_category(is_combat_skill: bool) -> CostCategory:
    return DEFAULT_COMBAT_SKILL_COST_CATEGORY if is_combat_skill else DEFAULT_SKILL_COST_CATEGORY
