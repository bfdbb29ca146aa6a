from __future__ import annotations

from datetime import datetime
from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

MIN_LEVEL = 1
MAX_LEVEL = 100
MAX_POINTS = 1_000_000
MAX_STRING_LENGTH_DEFAULT = 120
MAX_STRING_LENGTH_VERY_LONG = 1000
MAX_ARRAY_SIZE = 1000

LEVEL_UP_DICE_EXPRESSION = "1d4+2"
LEVEL_UP_DICE_MIN_TOTAL = 3
LEVEL_UP_DICE_MAX_TOTAL = 6


class SheetModel(BaseModel):
    """camelCase on the wire, snake_case in Python, unknown fields rejected."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class CostCategory(IntEnum):
    CAT_0 = 0
    CAT_1 = 1
    CAT_2 = 2
    CAT_3 = 3
    CAT_4 = 4


class LearningMethod(str, Enum):
    FREE = "FREE"
    LOW_PRICED = "LOW_PRICED"
    NORMAL = "NORMAL"
    EXPENSIVE = "EXPENSIVE"


class RecordType(IntEnum):
    CHARACTER_CREATED = 0
    LEVEL_CHANGED = 1
    CALCULATION_POINTS_CHANGED = 2
    BASE_VALUE_CHANGED = 3
    SPECIAL_ABILITIES_CHANGED = 4
    ATTRIBUTE_CHANGED = 5
    SKILL_CHANGED = 6
    COMBAT_VALUES_CHANGED = 7


class LevelUpEffectKind(str, Enum):
    HP_ROLL = "hpRoll"
    ARMOR_LEVEL_ROLL = "armorLevelRoll"
    INITIATIVE_PLUS_ONE = "initiativePlusOne"
    LUCK_PLUS_ONE = "luckPlusOne"
    BONUS_ACTION_PLUS_ONE = "bonusActionPlusOne"
    LEGENDARY_ACTION_PLUS_ONE = "legendaryActionPlusOne"
    REROLL_UNLOCK = "rerollUnlock"


# Character sheet


class Attribute(SheetModel):
    start: int
    current: int
    mod: int = 0
    total_cost: int = Field(0, ge=0)


class BaseValue(SheetModel):
    start: int
    current: int
    by_formula: Optional[int] = None
    by_lvl_up: Optional[int] = Field(None, ge=0)
    mod: int = 0


class CalculationPoints(SheetModel):
    start: float = Field(0, ge=0, le=MAX_POINTS)
    available: float = Field(0, ge=0, le=MAX_POINTS)
    total: float = Field(0, ge=0, le=MAX_POINTS)


class CalculationPointsSection(SheetModel):
    adventure_points: CalculationPoints
    attribute_points: CalculationPoints


class Skill(SheetModel):
    activated: bool = False
    start: int = 0
    current: int = 0
    mod: int = 0
    total_cost: float = Field(0, ge=0)
    default_cost_category: CostCategory = CostCategory.CAT_2


class CombatValues(SheetModel):
    available_points: int = Field(0, ge=0)
    skilled_attack_value: int = Field(0, ge=0)
    skilled_parade_value: int = Field(0, ge=0)
    attack_value: int = 0
    parade_value: int = 0


class LevelUpDiceRoll(SheetModel):
    dice: str = LEVEL_UP_DICE_EXPRESSION
    value: int


class LevelUpEffect(SheetModel):
    kind: LevelUpEffectKind
    roll: Optional[LevelUpDiceRoll] = None
    delta: Optional[int] = None


class EffectProgress(SheetModel):
    selection_count: int = Field(0, ge=0)
    first_chosen_level: int = Field(ge=MIN_LEVEL + 1)
    last_chosen_level: int = Field(ge=MIN_LEVEL + 1)

    @model_validator(mode="after")
    def _chosen_levels_ordered(self) -> "EffectProgress":
        if self.first_chosen_level > self.last_chosen_level:
            raise ValueError("firstChosenLevel must not exceed lastChosenLevel")
        return self


class LevelUpProgress(SheetModel):
    effects_by_level: Dict[str, LevelUpEffect] = Field(default_factory=dict)
    effects: Dict[LevelUpEffectKind, EffectProgress] = Field(default_factory=dict)


class GeneralInformation(SheetModel):
    name: str = Field(min_length=1, max_length=MAX_STRING_LENGTH_DEFAULT)
    level: int = Field(MIN_LEVEL, ge=MIN_LEVEL, le=MAX_LEVEL)
    level_up_progress: LevelUpProgress = Field(default_factory=LevelUpProgress)


class CharacterSheet(SheetModel):
    general_information: GeneralInformation
    calculation_points: CalculationPointsSection
    special_abilities: List[str] = Field(default_factory=list, max_length=MAX_ARRAY_SIZE)
    base_values: Dict[str, BaseValue]
    attributes: Dict[str, Attribute]
    skills: Dict[str, Dict[str, Skill]]
    combat_values: Dict[str, Dict[str, CombatValues]]


class CharacterSummary(SheetModel):
    character_id: str
    name: str
    level: int


# History


class PointsChange(SheetModel):
    old: CalculationPoints
    new: CalculationPoints


class RecordCalculationPoints(SheetModel):
    adventure_points: Optional[PointsChange] = None
    attribute_points: Optional[PointsChange] = None


class ChangeData(SheetModel):
    old: Dict[str, Any] = Field(default_factory=dict)
    new: Dict[str, Any] = Field(default_factory=dict)


class Record(SheetModel):
    type: RecordType
    name: str = Field(max_length=MAX_STRING_LENGTH_DEFAULT)
    number: int = Field(0, ge=0)
    id: str
    data: ChangeData
    learning_method: Optional[LearningMethod] = None
    calculation_points: RecordCalculationPoints = Field(default_factory=RecordCalculationPoints)
    comment: Optional[str] = Field(None, max_length=MAX_STRING_LENGTH_VERY_LONG)
    timestamp: datetime


class Character(SheetModel):
    """A stored character document.

    ``last_record`` is the history record of the latest commit, written together
    with the sheet so that a record whose append failed can still be recovered.
    """

    user_id: str
    character_id: str
    character_sheet: CharacterSheet
    last_record: Optional[Record] = None

    def to_response(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude={"last_record"})


class HistoryBlock(SheetModel):
    character_id: str
    block_number: int = Field(ge=1)
    block_id: str
    previous_block_id: Optional[str] = None
    changes: List[Record] = Field(default_factory=list)


class HistoryPage(SheetModel):
    previous_block_number: Optional[int] = None
    previous_block_id: Optional[str] = None
    items: List[HistoryBlock]


# Level-up offer


class RollRange(SheetModel):
    min: int
    max: int


class LevelUpOption(SheetModel):
    kind: LevelUpEffectKind
    description: str
    allowed: bool
    reason_if_denied: Optional[str] = None
    first_level: int
    selection_count: int
    max_selection_count: int
    cooldown_levels: int
    dice_expression: Optional[str] = None
    roll_range: Optional[RollRange] = None
    first_chosen_level: Optional[int] = None
    last_chosen_level: Optional[int] = None


# Requests


class InitialNew(SheetModel):
    initial_value: int
    new_value: int


class InitialIncreased(SheetModel):
    initial_value: int
    increased_points: int


class CharacterCreateRequest(SheetModel):
    name: str = Field(min_length=1, max_length=MAX_STRING_LENGTH_DEFAULT)
    attributes: Dict[str, int]
    activated_skills: List[str] = Field(default_factory=list, max_length=MAX_ARRAY_SIZE)
    special_abilities: List[str] = Field(default_factory=list, max_length=MAX_ARRAY_SIZE)


class LevelRequest(SheetModel):
    initial_level: int = Field(ge=MIN_LEVEL, le=MAX_LEVEL)


class LevelUpEffectParams(SheetModel):
    roll: int


class LevelUpRequest(SheetModel):
    initial_level: int = Field(ge=MIN_LEVEL, le=MAX_LEVEL)
    selected_effect: LevelUpEffectKind
    effect_params: Optional[LevelUpEffectParams] = None
    options_hash: str = Field(max_length=MAX_STRING_LENGTH_DEFAULT)


class AttributeUpdateRequest(SheetModel):
    start: Optional[InitialNew] = None
    current: Optional[InitialIncreased] = None
    mod: Optional[InitialNew] = None


class SkillUpdateRequest(SheetModel):
    activated: Optional[bool] = None
    start: Optional[InitialNew] = None
    current: Optional[InitialIncreased] = None
    mod: Optional[InitialNew] = None
    learning_method: Optional[str] = Field(None, max_length=MAX_STRING_LENGTH_DEFAULT)


class CombatValuesUpdateRequest(SheetModel):
    skilled_attack_value: InitialIncreased
    skilled_parade_value: InitialIncreased


class BaseValueUpdateRequest(SheetModel):
    start: Optional[InitialNew] = None
    by_lvl_up: Optional[InitialNew] = None
    mod: Optional[InitialNew] = None


class PointsUpdate(SheetModel):
    start: Optional[InitialNew] = None
    total: Optional[InitialIncreased] = None


class CalculationPointsUpdateRequest(SheetModel):
    adventure_points: Optional[PointsUpdate] = None
    attribute_points: Optional[PointsUpdate] = None


class SpecialAbilityRequest(SheetModel):
    special_ability: str = Field(min_length=1, max_length=MAX_STRING_LENGTH_DEFAULT)


class CommentRequest(SheetModel):
    comment: str = Field(max_length=MAX_STRING_LENGTH_VERY_LONG)


# Responses


class MutationResponse(SheetModel):
    data: Dict[str, Any]
    history_record: Optional[Record] = None
