"""
Level-up allocator.

Every level above the first lets the player pick one effect. Which effects
are offered depends on the next level and on what was picked before
(``LevelUpProgress``): an effect becomes available at its first level, may
be on cooldown for a number of levels after it was chosen, and can only be
chosen a limited number of times.

The offered options are fingerprinted with ``options_hash``; a commit must
present the hash it was offered so that a stale client cannot apply an
effect against a sheet that changed in the meantime.
"""

import hashlib
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..errors import ConflictError, ErrorContext, ValidationError
from ..models import (
    LEVEL_UP_DICE_EXPRESSION,
    LEVEL_UP_DICE_MAX_TOTAL,
    LEVEL_UP_DICE_MIN_TOTAL,
    MAX_LEVEL,
    CharacterSheet,
    EffectProgress,
    LevelUpDiceRoll,
    LevelUpEffect,
    LevelUpEffectKind,
    LevelUpOption,
    LevelUpProgress,
    LevelUpRequest,
    RollRange,
)

REROLL_ABILITY = "Reroll"
STALE_OPTIONS_MESSAGE = "Options have changed. Please refresh level-up options and retry."


@dataclass(frozen=True)
class EffectConfig:
    description: str
    first_level: int
    max_selection_count: int
    cooldown_levels: int
    base_value: Optional[str] = None
    dice: bool = False


EFFECT_CONFIG: Dict[LevelUpEffectKind, EffectConfig] = {
    LevelUpEffectKind.HP_ROLL: EffectConfig(
        "+1d4+2 Health Points", 2, MAX_LEVEL - 1, 0, base_value="healthPoints", dice=True
    ),
    LevelUpEffectKind.ARMOR_LEVEL_ROLL: EffectConfig(
        "+1d4+2 Armor Level", 2, MAX_LEVEL - 1, 2, base_value="armorLevel", dice=True
    ),
    LevelUpEffectKind.INITIATIVE_PLUS_ONE: EffectConfig(
        "+1 Initiative Base Value", 2, MAX_LEVEL - 1, 1, base_value="initiativeBaseValue"
    ),
    LevelUpEffectKind.LUCK_PLUS_ONE: EffectConfig("+1 Luck", 2, 3, 2, base_value="luckPoints"),
    LevelUpEffectKind.BONUS_ACTION_PLUS_ONE: EffectConfig(
        "+1 Bonus Action per Combat Round", 6, 3, 9, base_value="bonusActionsPerCombatRound"
    ),
    LevelUpEffectKind.LEGENDARY_ACTION_PLUS_ONE: EffectConfig(
        "+1 Legendary Action", 11, 3, 9, base_value="legendaryActions"
    ),
    LevelUpEffectKind.REROLL_UNLOCK: EffectConfig("Unlock reroll", 2, 1, MAX_LEVEL),
}


def _canonical_hash(data: Dict) -> str:
    """Compute a deterministic hash for a JSON-serializable object."""
    payload = json.dumps(data, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def options_hash(character_id: str, level: int, progress: LevelUpProgress) -> str:
    return _canonical_hash(
        {"characterId": character_id, "level": level, "levelUpProgress": progress.to_document()}
    )


def _build_option(kind: LevelUpEffectKind, next_level: int, progress: Optional[EffectProgress]) -> LevelUpOption:
    config = EFFECT_CONFIG[kind]
    selection_count = progress.selection_count if progress else 0
    last_chosen = progress.last_chosen_level if progress else None

    reasons: List[str] = []
    if next_level < config.first_level:
        reasons.append(f"Only available at level {config.first_level}.")
    if last_chosen is not None and next_level - last_chosen <= config.cooldown_levels:
        reasons.append(f"Next available at level {last_chosen + config.cooldown_levels + 1}.")
    if selection_count >= config.max_selection_count:
        reasons.append(f"Maximum of {config.max_selection_count} reached.")

    return LevelUpOption(
        kind=kind,
        description=config.description,
        allowed=not reasons,
        reason_if_denied=" ".join(reasons) if reasons else None,
        first_level=config.first_level,
        selection_count=selection_count,
        max_selection_count=config.max_selection_count,
        cooldown_levels=config.cooldown_levels,
        dice_expression=LEVEL_UP_DICE_EXPRESSION if config.dice else None,
        roll_range=RollRange(min=LEVEL_UP_DICE_MIN_TOTAL, max=LEVEL_UP_DICE_MAX_TOTAL) if config.dice else None,
        first_chosen_level=progress.first_chosen_level if progress else None,
        last_chosen_level=last_chosen,
    )


def compute_options(level: int, progress: LevelUpProgress) -> List[LevelUpOption]:
    next_level = level + 1
    return [_build_option(kind, next_level, progress.effects.get(kind)) for kind in EFFECT_CONFIG]


def build_effect(kind: LevelUpEffectKind, roll: Optional[int]) -> LevelUpEffect:
    """Validate the effect parameters and build the effect to persist."""
    config = EFFECT_CONFIG[kind]
    context = ErrorContext(field="effectParams.roll", metadata={"effect": kind.value})
    if config.dice:
        if roll is None:
            raise ValidationError(f"Effect '{kind.value}' requires a roll", context)
        if not LEVEL_UP_DICE_MIN_TOTAL <= roll <= LEVEL_UP_DICE_MAX_TOTAL:
            raise ValidationError(
                f"Roll {roll} is outside {LEVEL_UP_DICE_MIN_TOTAL}..{LEVEL_UP_DICE_MAX_TOTAL}",
                context,
            )
        return LevelUpEffect(kind=kind, roll=LevelUpDiceRoll(dice=LEVEL_UP_DICE_EXPRESSION, value=roll))

    if roll is not None:
        raise ValidationError(f"Effect '{kind.value}' does not take a roll", context)
    if config.base_value is None:
        return LevelUpEffect(kind=kind)
    return LevelUpEffect(kind=kind, delta=1)


@dataclass
class LevelUpPlan:
    sheet: CharacterSheet
    effect: LevelUpEffect
    old: Dict[str, Any] = field(default_factory=dict)
    new: Dict[str, Any] = field(default_factory=dict)


def plan_level_up(character_id: str, sheet: CharacterSheet, request: LevelUpRequest) -> LevelUpPlan:
    """
    Check a level-up request against the current sheet and compute the result.

    The returned plan holds an updated copy of the sheet; the input sheet is
    left untouched.

    Raises:
        ConflictError: stale level or options hash, or maximum level reached
        ValidationError: effect not allowed or invalid roll
    """
    info = sheet.general_information
    context = ErrorContext(character_id=character_id, operation="apply_level_up")

    if request.initial_level != info.level:
        raise ConflictError(
            f"Level mismatch: expected {request.initial_level}, current level is {info.level}",
            context,
        )
    if info.level >= MAX_LEVEL:
        raise ConflictError("Maximum level reached", context)
    if request.options_hash != options_hash(character_id, info.level, info.level_up_progress):
        raise ConflictError(STALE_OPTIONS_MESSAGE, context)

    kind = request.selected_effect
    next_level = info.level + 1
    option = _build_option(kind, next_level, info.level_up_progress.effects.get(kind))
    if not option.allowed:
        raise ValidationError(
            f"Effect '{kind.value}' is not allowed: {option.reason_if_denied}",
            context,
            details={"reason": option.reason_if_denied},
        )

    roll = request.effect_params.roll if request.effect_params else None
    effect = build_effect(kind, roll)

    new_sheet = sheet.model_copy(deep=True)
    new_info = new_sheet.general_information
    progress = new_info.level_up_progress
    previous = progress.effects.get(kind)
    progress.effects[kind] = EffectProgress(
        selection_count=(previous.selection_count if previous else 0) + 1,
        first_chosen_level=previous.first_chosen_level if previous else next_level,
        last_chosen_level=next_level,
    )
    progress.effects_by_level[str(next_level)] = effect
    new_info.level = next_level

    old: Dict[str, Any] = {"value": info.level, "levelUpProgress": info.level_up_progress.to_document()}
    new: Dict[str, Any] = {"value": next_level, "levelUpProgress": progress.to_document()}

    config = EFFECT_CONFIG[kind]
    if config.base_value is not None:
        amount = effect.roll.value if effect.roll else effect.delta
        base_value = new_sheet.base_values[config.base_value]
        old["baseValues"] = {config.base_value: base_value.to_document()}
        base_value.by_lvl_up = (base_value.by_lvl_up or 0) + amount
        base_value.current += amount
        new["baseValues"] = {config.base_value: base_value.to_document()}
    elif REROLL_ABILITY not in new_sheet.special_abilities:
        old["specialAbilities"] = list(sheet.special_abilities)
        new_sheet.special_abilities.append(REROLL_ABILITY)
        new["specialAbilities"] = list(new_sheet.special_abilities)

    return LevelUpPlan(sheet=new_sheet, effect=effect, old=old, new=new)
