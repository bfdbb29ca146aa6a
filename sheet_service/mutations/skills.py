from typing import Any, Dict, Optional

from ..errors import ConflictError, ErrorContext, ValidationError
from ..logging_config import get_logger
from ..models import CharacterSheet, RecordType, Skill, SkillUpdateRequest
from ..rules import catalog
from ..rules.combat import calculate_combat_values
from ..rules.cost import adjust_cost_category, skill_activation_cost, skill_increase_cost
from .common import (
    MutationResult,
    Services,
    character_header,
    commit,
    initial_increased,
    initial_new,
    load_character,
    load_for_update,
    make_record,
    points_change,
    replayed_record,
    require_learning_method,
)

logger = get_logger(__name__)


def _get_skill(sheet: CharacterSheet, category: str, skill_name: str, context: ErrorContext) -> Skill:
    if not catalog.is_known_skill(category, skill_name) or skill_name not in sheet.skills.get(category, {}):
        raise ValidationError(f"Unknown skill '{category}/{skill_name}'", context)
    return sheet.skills[category][skill_name]


def _record_name(category: str, skill_name: str) -> str:
    combat_category = catalog.combat_category_of(skill_name) if category == catalog.COMBAT_CATEGORY else None
    if combat_category:
        return f"{category}/{skill_name} ({combat_category})"
    return f"{category}/{skill_name}"


def update_skill(
    services: Services,
    user_id: str,
    character_id: str,
    category: str,
    skill_name: str,
    request: SkillUpdateRequest,
) -> MutationResult:
    character, recovered = load_for_update(services, user_id, character_id)
    sheet = character.character_sheet
    context = ErrorContext(
        character_id=character_id, user_id=user_id, operation="update_skill", field=f"{category}/{skill_name}"
    )
    old_skill = _get_skill(sheet, category, skill_name, context)

    learning_method = None
    if request.activated is not None or request.current is not None or request.learning_method is not None:
        learning_method = require_learning_method(request.learning_method, context)

    if request.activated is False:
        raise ConflictError("Skills can't be deactivated", context)

    skill = old_skill.model_copy()
    old_points = sheet.calculation_points.adventure_points
    points = old_points.model_copy()
    cost_category = (
        adjust_cost_category(skill.default_cost_category, learning_method)
        if learning_method is not None
        else skill.default_cost_category
    )

    if request.activated and not skill.activated:
        cost = skill_activation_cost(cost_category)
        if cost > points.available:
            raise ConflictError(
                f"Not enough adventure points to activate '{category}/{skill_name}'",
                context,
                details={"required": cost, "available": points.available},
            )
        skill.activated = True
        skill.total_cost += cost
        points.available -= cost

    touches_values = any(value is not None for value in (request.start, request.current, request.mod))
    if touches_values and not skill.activated:
        raise ConflictError(f"Skill '{category}/{skill_name}' is not activated", context)

    if request.start is not None:
        skill.start = initial_new(skill.start, request.start, "start", context)

    if request.current is not None:
        target = initial_increased(skill.current, request.current, "current", context)
        cost = sum(skill_increase_cost(value, cost_category) for value in range(skill.current, target))
        if cost > points.available:
            raise ConflictError(
                f"Not enough adventure points to increase '{category}/{skill_name}'",
                context,
                details={"required": cost, "available": points.available},
            )
        skill.current = target
        skill.total_cost += cost
        points.available -= cost

    if request.mod is not None:
        skill.mod = initial_new(skill.mod, request.mod, "mod", context)

    header = {**character_header(character), "skillCategory": category, "skillName": skill_name}
    increase_cost = skill_increase_cost(skill.current, cost_category)
    if skill == old_skill:
        logger.info("Skill unchanged, replay", character_id=character_id, skill=f"{category}/{skill_name}")
        return MutationResult(
            data={**header, "skill": skill.to_document(), "increaseCost": increase_cost},
            record=replayed_record(recovered, RecordType.SKILL_CHANGED, _record_name(category, skill_name)),
        )

    old: Dict[str, Any] = {"skill": old_skill.to_document()}
    new: Dict[str, Any] = {"skill": skill.to_document()}
    sheet.skills[category][skill_name] = skill
    sheet.calculation_points.adventure_points = points

    combat_category = catalog.combat_category_of(skill_name) if category == catalog.COMBAT_CATEGORY else None
    if combat_category is not None:
        old_values = sheet.combat_values[combat_category][skill_name]
        new_values = calculate_combat_values(skill_name, sheet.base_values, old_values, old_skill, skill)
        if new_values != old_values:
            old["combatValues"] = {combat_category: {skill_name: old_values.to_document()}}
            new["combatValues"] = {combat_category: {skill_name: new_values.to_document()}}
            sheet.combat_values[combat_category][skill_name] = new_values

    adventure_points = points_change(old_points, points)
    record = make_record(
        RecordType.SKILL_CHANGED,
        _record_name(category, skill_name),
        old,
        new,
        learning_method=learning_method,
        adventure_points=adventure_points,
    )
    stored = commit(services, character, record)
    logger.info("Skill updated", character_id=character_id, skill=f"{category}/{skill_name}")

    data: Dict[str, Any] = {**header, "changes": {"old": old, "new": new}, "increaseCost": increase_cost}
    if adventure_points is not None:
        data["adventurePoints"] = adventure_points.to_document()
    return MutationResult(data=data, record=stored)


def get_skill_increase_cost(
    services: Services,
    user_id: str,
    character_id: str,
    category: str,
    skill_name: str,
    learning_method: Optional[str],
) -> Dict[str, Any]:
    character = load_character(services, user_id, character_id)
    context = ErrorContext(
        character_id=character_id, user_id=user_id, operation="get_skill_increase_cost", field=f"{category}/{skill_name}"
    )
    skill = _get_skill(character.character_sheet, category, skill_name, context)
    method = require_learning_method(learning_method, context)
    cost_category = adjust_cost_category(skill.default_cost_category, method)

    result: Dict[str, Any] = {
        "characterId": character_id,
        "skillCategory": category,
        "skillName": skill_name,
        "learningMethod": method.value,
        "increaseCost": skill_increase_cost(skill.current, cost_category),
    }
    if not skill.activated:
        result["activationCost"] = skill_activation_cost(cost_category)
    return result
