from typing import Any, Dict

from ..errors import ConflictError, ErrorContext, ValidationError
from ..logging_config import get_logger
from ..models import CombatValuesUpdateRequest, InitialIncreased, RecordType
from ..rules import catalog
from ..rules.combat import calculate_combat_values
from .common import (
    MutationResult,
    Services,
    character_header,
    commit,
    load_for_update,
    make_record,
    replayed_record,
)

logger = get_logger(__name__)


def _increase(current: int, change: InitialIncreased, field: str, context: ErrorContext) -> int:
    """Points still to add for ``change``; 0 when the target is already reached."""
    if change.increased_points < 0:
        raise ValidationError(f"Increased points for '{field}' must not be negative", context)
    target = change.initial_value + change.increased_points
    if current == target:
        return 0
    if current != change.initial_value:
        raise ConflictError(
            f"The passed initial value for '{field}' doesn't match the current value",
            context,
            details={"field": field, "initialValue": change.initial_value, "currentValue": current},
        )
    return change.increased_points


def update_combat_values(
    services: Services,
    user_id: str,
    character_id: str,
    combat_category: str,
    skill_name: str,
    request: CombatValuesUpdateRequest,
) -> MutationResult:
    character, recovered = load_for_update(services, user_id, character_id)
    sheet = character.character_sheet
    context = ErrorContext(
        character_id=character_id,
        user_id=user_id,
        operation="update_combat_values",
        field=f"{combat_category}/{skill_name}",
    )
    if combat_category not in catalog.COMBAT_SKILL_CATEGORIES or catalog.combat_category_of(skill_name) != combat_category:
        raise ValidationError(f"Unknown combat skill '{combat_category}/{skill_name}'", context)
    if combat_category == catalog.RANGED and request.skilled_parade_value.increased_points != 0:
        raise ValidationError("Ranged combat skills have no parade value", context)

    old_values = sheet.combat_values[combat_category][skill_name]
    attack_increase = _increase(
        old_values.skilled_attack_value, request.skilled_attack_value, "skilledAttackValue", context
    )
    parade_increase = _increase(
        old_values.skilled_parade_value, request.skilled_parade_value, "skilledParadeValue", context
    )

    header = {**character_header(character), "combatCategory": combat_category, "skillName": skill_name}
    if attack_increase == 0 and parade_increase == 0:
        logger.info("Combat values unchanged, replay", character_id=character_id, skill=skill_name)
        return MutationResult(
            data={**header, "combatValues": old_values.to_document()},
            record=replayed_record(recovered, RecordType.COMBAT_VALUES_CHANGED, f"{combat_category}/{skill_name}"),
        )

    new_values = calculate_combat_values(
        skill_name,
        sheet.base_values,
        old_values,
        attack_increase=attack_increase,
        parade_increase=parade_increase,
    )
    sheet.combat_values[combat_category][skill_name] = new_values

    old: Dict[str, Any] = {"combatValues": {combat_category: {skill_name: old_values.to_document()}}}
    new: Dict[str, Any] = {"combatValues": {combat_category: {skill_name: new_values.to_document()}}}
    record = make_record(RecordType.COMBAT_VALUES_CHANGED, f"{combat_category}/{skill_name}", old, new)
    stored = commit(services, character, record)
    logger.info(
        "Combat values updated",
        character_id=character_id,
        skill=skill_name,
        attack_increase=attack_increase,
        parade_increase=parade_increase,
    )
    return MutationResult(data={**header, "changes": {"old": old, "new": new}}, record=stored)
