import uuid
from typing import Any, Dict, List, Optional

from ..errors import ErrorContext, NotFoundError, ValidationError
from ..logging_config import get_logger
from ..models import (
    MAX_STRING_LENGTH_DEFAULT,
    Attribute,
    BaseValue,
    CalculationPoints,
    CalculationPointsSection,
    Character,
    CharacterCreateRequest,
    CharacterSheet,
    CharacterSummary,
    CombatValues,
    GeneralInformation,
    RecordType,
    Skill,
)
from ..rules import catalog
from ..rules.combat import calculate_combat_values
from ..rules.cost import default_cost_category
from ..rules.formulas import derive_base_values
from .common import MutationResult, Services, commit, load_character, make_record

logger = get_logger(__name__)

ATTRIBUTE_POINTS_FOR_CREATION = 40
MIN_START_ATTRIBUTE = 4
MAX_START_ATTRIBUTE = 7
CLONE_SUFFIX = " (Copy)"


def _validate_attributes(attributes: Dict[str, int]) -> None:
    expected = set(catalog.ATTRIBUTE_NAMES)
    unknown = sorted(set(attributes) - expected)
    missing = sorted(expected - set(attributes))
    if unknown or missing:
        raise ValidationError(
            "Start attributes must name every attribute exactly once",
            ErrorContext(field="attributes"),
            details={"unknown": unknown, "missing": missing},
        )
    for name, value in attributes.items():
        if not MIN_START_ATTRIBUTE <= value <= MAX_START_ATTRIBUTE:
            raise ValidationError(
                f"Start value of '{name}' must be between {MIN_START_ATTRIBUTE} and {MAX_START_ATTRIBUTE}",
                ErrorContext(field=f"attributes.{name}"),
            )
    spent = sum(attributes.values())
    if spent > ATTRIBUTE_POINTS_FOR_CREATION:
        raise ValidationError(
            f"Start attributes use {spent} points, only {ATTRIBUTE_POINTS_FOR_CREATION} are available",
            ErrorContext(field="attributes"),
        )


def _parse_activated_skills(names: List[str]) -> Dict[str, set]:
    activated: Dict[str, set] = {}
    for entry in names:
        category, _, skill_name = entry.partition("/")
        if not catalog.is_known_skill(category, skill_name):
            raise ValidationError(f"Unknown skill '{entry}'", ErrorContext(field="activatedSkills"))
        activated.setdefault(category, set()).add(skill_name)
    return activated


def build_character_sheet(request: CharacterCreateRequest) -> CharacterSheet:
    _validate_attributes(request.attributes)
    extra_skills = _parse_activated_skills(request.activated_skills)

    attributes = {
        name: Attribute(start=request.attributes[name], current=request.attributes[name])
        for name in catalog.ATTRIBUTE_NAMES
    }

    derived = derive_base_values(attributes)
    base_values: Dict[str, BaseValue] = {}
    for name in catalog.BASE_VALUE_NAMES:
        value = derived.get(name)
        by_lvl_up = 0 if name in catalog.LEVEL_UP_UPDATABLE_BASE_VALUES else None
        if value is None:
            base_values[name] = BaseValue(start=0, current=0, by_lvl_up=by_lvl_up)
        else:
            base_values[name] = BaseValue(start=value, current=value, by_formula=value, by_lvl_up=by_lvl_up)

    skills: Dict[str, Dict[str, Skill]] = {}
    for category, skill_names in catalog.SKILLS.items():
        starts = set(catalog.START_SKILLS.get(category, ())) | extra_skills.get(category, set())
        skills[category] = {
            name: Skill(
                activated=name in starts,
                default_cost_category=default_cost_category(category == catalog.COMBAT_CATEGORY),
            )
            for name in skill_names
        }

    combat_values: Dict[str, Dict[str, CombatValues]] = {catalog.MELEE: {}, catalog.RANGED: {}}
    for skill_name in catalog.SKILLS[catalog.COMBAT_CATEGORY]:
        initial = CombatValues(available_points=catalog.combat_skill_handling(skill_name))
        combat_values[catalog.combat_category_of(skill_name)][skill_name] = calculate_combat_values(
            skill_name, base_values, initial
        )

    special_abilities: List[str] = []
    for ability in request.special_abilities:
        if ability not in special_abilities:
            special_abilities.append(ability)

    spent = sum(request.attributes.values())
    return CharacterSheet(
        general_information=GeneralInformation(name=request.name),
        calculation_points=CalculationPointsSection(
            adventure_points=CalculationPoints(),
            attribute_points=CalculationPoints(
                start=ATTRIBUTE_POINTS_FOR_CREATION,
                available=ATTRIBUTE_POINTS_FOR_CREATION - spent,
                total=ATTRIBUTE_POINTS_FOR_CREATION,
            ),
        ),
        special_abilities=special_abilities,
        base_values=base_values,
        attributes=attributes,
        skills=skills,
        combat_values=combat_values,
    )


def _store_new_character(services: Services, character: Character, comment: Optional[str] = None) -> MutationResult:
    sheet = character.character_sheet
    record = make_record(
        RecordType.CHARACTER_CREATED,
        sheet.general_information.name,
        old={},
        new={"character": sheet.to_document()},
        comment=comment,
    )
    stored = commit(services, character, record)
    return MutationResult(data=character.to_response(), record=stored)


def create_character(services: Services, user_id: str, request: CharacterCreateRequest) -> MutationResult:
    character = Character(
        user_id=user_id,
        character_id=str(uuid.uuid4()),
        character_sheet=build_character_sheet(request),
    )
    result = _store_new_character(services, character)
    logger.info("Character created", character_id=character.character_id, user_id=user_id)
    return result


def clone_character(services: Services, user_id: str, character_id: str) -> MutationResult:
    source = load_character(services, user_id, character_id)
    sheet = source.character_sheet.model_copy(deep=True)
    base_name = sheet.general_information.name[: MAX_STRING_LENGTH_DEFAULT - len(CLONE_SUFFIX)]
    sheet.general_information.name = f"{base_name}{CLONE_SUFFIX}"

    clone = Character(user_id=user_id, character_id=str(uuid.uuid4()), character_sheet=sheet)
    result = _store_new_character(services, clone, comment=f"Cloned from character {character_id}")
    logger.info("Character cloned", character_id=clone.character_id, source_character_id=character_id)
    return result


def get_character(services: Services, user_id: str, character_id: str) -> Dict[str, Any]:
    return load_character(services, user_id, character_id).to_response()


def list_characters(services: Services, user_id: str) -> Dict[str, Any]:
    summaries = []
    for item in services.backend.characters.list_characters(user_id):
        character = Character.model_validate(item)
        info = character.character_sheet.general_information
        summaries.append(
            CharacterSummary(character_id=character.character_id, name=info.name, level=info.level).to_document()
        )
    return {"characters": summaries}


def delete_character(services: Services, user_id: str, character_id: str) -> Dict[str, Any]:
    if not services.backend.characters.delete_character(user_id, character_id):
        raise NotFoundError(
            f"Character {character_id} not found",
            ErrorContext(character_id=character_id, user_id=user_id, operation="delete_character"),
        )
    deleted_blocks = services.ledger.delete(character_id)
    logger.info("Character deleted", character_id=character_id, user_id=user_id)
    return {"characterId": character_id, "userId": user_id, "deletedHistoryBlocks": deleted_blocks}
