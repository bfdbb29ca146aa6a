import pytest

from sheet_service.errors import ConflictError, ValidationError
from sheet_service.models import (
    BaseValue,
    CalculationPoints,
    CalculationPointsSection,
    CharacterSheet,
    EffectProgress,
    GeneralInformation,
    LevelUpEffectKind,
    LevelUpProgress,
    LevelUpRequest,
)
from sheet_service.rules.level_up import (
    EFFECT_CONFIG,
    REROLL_ABILITY,
    STALE_OPTIONS_MESSAGE,
    build_effect,
    compute_options,
    options_hash,
    plan_level_up,
)

CHARACTER_ID = "c0ffee00-0000-4000-8000-000000000001"


def _sheet(level=1, progress=None):
    return CharacterSheet(
        general_information=GeneralInformation(name="Aldric", level=level, level_up_progress=progress or LevelUpProgress()),
        calculation_points=CalculationPointsSection(
            adventure_points=CalculationPoints(), attribute_points=CalculationPoints()
        ),
        base_values={
            "healthPoints": BaseValue(start=35, current=35, by_formula=35, by_lvl_up=0),
            "armorLevel": BaseValue(start=0, current=0, by_lvl_up=0),
            "initiativeBaseValue": BaseValue(start=4, current=4, by_formula=4, by_lvl_up=0),
            "luckPoints": BaseValue(start=0, current=0, by_lvl_up=0),
        },
        attributes={},
        skills={},
        combat_values={},
    )


def _request(sheet, kind, roll=None, **overrides):
    info = sheet.general_information
    payload = {
        "initialLevel": info.level,
        "selectedEffect": kind.value,
        "optionsHash": options_hash(CHARACTER_ID, info.level, info.level_up_progress),
    }
    if roll is not None:
        payload["effectParams"] = {"roll": roll}
    payload.update(overrides)
    return LevelUpRequest.model_validate(payload)


def _options(level, progress=None):
    return {option.kind: option for option in compute_options(level, progress or LevelUpProgress())}


def test_first_level_up_offers():
    options = _options(1)
    assert options[LevelUpEffectKind.HP_ROLL].allowed
    assert options[LevelUpEffectKind.HP_ROLL].dice_expression == "1d4+2"
    assert options[LevelUpEffectKind.HP_ROLL].roll_range.min == 3
    assert options[LevelUpEffectKind.HP_ROLL].roll_range.max == 6
    assert options[LevelUpEffectKind.LUCK_PLUS_ONE].allowed
    assert options[LevelUpEffectKind.LUCK_PLUS_ONE].dice_expression is None
    assert not options[LevelUpEffectKind.BONUS_ACTION_PLUS_ONE].allowed
    assert options[LevelUpEffectKind.BONUS_ACTION_PLUS_ONE].reason_if_denied == "Only available at level 6."
    assert not options[LevelUpEffectKind.LEGENDARY_ACTION_PLUS_ONE].allowed


@pytest.mark.parametrize(
    "kind", [LevelUpEffectKind.LUCK_PLUS_ONE, LevelUpEffectKind.INITIATIVE_PLUS_ONE, LevelUpEffectKind.ARMOR_LEVEL_ROLL]
)
def test_cooldown_blocks_effect(kind):
    last_chosen = 2
    cooldown = EFFECT_CONFIG[kind].cooldown_levels
    progress = LevelUpProgress(
        effects={kind: EffectProgress(selection_count=1, first_chosen_level=last_chosen, last_chosen_level=last_chosen)}
    )
    for next_level in range(last_chosen + 1, last_chosen + cooldown + 2):
        option = _options(next_level - 1, progress)[kind]
        if next_level <= last_chosen + cooldown:
            assert not option.allowed, next_level
            assert option.reason_if_denied == f"Next available at level {last_chosen + cooldown + 1}."
        else:
            assert option.allowed, next_level


def test_max_selection_count_blocks_effect():
    progress = LevelUpProgress(
        effects={LevelUpEffectKind.LUCK_PLUS_ONE: EffectProgress(selection_count=3, first_chosen_level=2, last_chosen_level=8)}
    )
    option = _options(20, progress)[LevelUpEffectKind.LUCK_PLUS_ONE]
    assert not option.allowed
    assert option.reason_if_denied == "Maximum of 3 reached."


def test_options_hash_changes_with_progress():
    first = options_hash(CHARACTER_ID, 1, LevelUpProgress())
    assert first == options_hash(CHARACTER_ID, 1, LevelUpProgress())
    assert first != options_hash(CHARACTER_ID, 2, LevelUpProgress())


def test_build_effect_rules():
    assert build_effect(LevelUpEffectKind.HP_ROLL, 4).roll.value == 4
    assert build_effect(LevelUpEffectKind.LUCK_PLUS_ONE, None).delta == 1
    reroll = build_effect(LevelUpEffectKind.REROLL_UNLOCK, None)
    assert reroll.delta is None and reroll.roll is None
    with pytest.raises(ValidationError):
        build_effect(LevelUpEffectKind.HP_ROLL, None)
    with pytest.raises(ValidationError):
        build_effect(LevelUpEffectKind.HP_ROLL, 7)
    with pytest.raises(ValidationError):
        build_effect(LevelUpEffectKind.LUCK_PLUS_ONE, 4)


def test_plan_hp_roll():
    sheet = _sheet()
    plan = plan_level_up(CHARACTER_ID, sheet, _request(sheet, LevelUpEffectKind.HP_ROLL, roll=5))
    info = plan.sheet.general_information
    assert info.level == 2
    assert info.level_up_progress.effects_by_level["2"].roll.value == 5
    progress = info.level_up_progress.effects[LevelUpEffectKind.HP_ROLL]
    assert (progress.selection_count, progress.first_chosen_level, progress.last_chosen_level) == (1, 2, 2)
    assert plan.sheet.base_values["healthPoints"].current == 40
    assert plan.sheet.base_values["healthPoints"].by_lvl_up == 5
    assert plan.old["baseValues"]["healthPoints"]["current"] == 35
    assert plan.new["value"] == 2
    assert sheet.general_information.level == 1


def test_plan_reroll_adds_special_ability():
    sheet = _sheet()
    plan = plan_level_up(CHARACTER_ID, sheet, _request(sheet, LevelUpEffectKind.REROLL_UNLOCK))
    assert REROLL_ABILITY in plan.sheet.special_abilities
    assert plan.new["specialAbilities"] == [REROLL_ABILITY]


def test_plan_rejects_stale_requests():
    sheet = _sheet(level=3)
    with pytest.raises(ConflictError):
        plan_level_up(CHARACTER_ID, sheet, _request(sheet, LevelUpEffectKind.LUCK_PLUS_ONE, initialLevel=2))
    with pytest.raises(ConflictError) as excinfo:
        plan_level_up(CHARACTER_ID, sheet, _request(sheet, LevelUpEffectKind.LUCK_PLUS_ONE, optionsHash="stale"))
    assert excinfo.value.message == STALE_OPTIONS_MESSAGE


def test_plan_rejects_denied_effect():
    sheet = _sheet()
    with pytest.raises(ValidationError):
        plan_level_up(CHARACTER_ID, sheet, _request(sheet, LevelUpEffectKind.LEGENDARY_ACTION_PLUS_ONE))


def test_plan_rejects_max_level():
    sheet = _sheet(level=100)
    with pytest.raises(ConflictError):
        plan_level_up(CHARACTER_ID, sheet, _request(sheet, LevelUpEffectKind.HP_ROLL, roll=3))
