from typing import Any, Dict

from ..errors import ErrorContext, ValidationError
from ..logging_config import get_logger
from ..models import BaseValueUpdateRequest, RecordType
from ..rules.catalog import COMBAT_BASE_VALUES, LEVEL_UP_UPDATABLE_BASE_VALUES
from .common import (
    MutationResult,
    Services,
    character_header,
    commit,
    initial_new,
    load_for_update,
    make_record,
    recalculate_combat,
    replayed_record,
)

logger = get_logger(__name__)


def update_base_value(
    services: Services,
    user_id: str,
    character_id: str,
    base_value_name: str,
    request: BaseValueUpdateRequest,
) -> MutationResult:
    character, recovered = load_for_update(services, user_id, character_id)
    sheet = character.character_sheet
    context = ErrorContext(
        character_id=character_id, user_id=user_id, operation="update_base_value", field=base_value_name
    )
    if base_value_name not in sheet.base_values:
        raise ValidationError(f"Unknown base value '{base_value_name}'", context)
    if request.by_lvl_up is not None and base_value_name not in LEVEL_UP_UPDATABLE_BASE_VALUES:
        raise ValidationError(f"Base value '{base_value_name}' can't be changed by level-up", context)

    old_value = sheet.base_values[base_value_name]
    value = old_value.model_copy()

    if request.start is not None:
        value.start = initial_new(value.start, request.start, "start", context)

    if request.by_lvl_up is not None:
        previous = value.by_lvl_up or 0
        value.by_lvl_up = initial_new(previous, request.by_lvl_up, "byLvlUp", context)
        value.current += value.by_lvl_up - previous

    if request.mod is not None:
        value.mod = initial_new(value.mod, request.mod, "mod", context)

    header = {**character_header(character), "baseValueName": base_value_name}
    if value == old_value:
        logger.info("Base value unchanged, replay", character_id=character_id, base_value=base_value_name)
        return MutationResult(
            data={**header, "baseValue": value.to_document()},
            record=replayed_record(recovered, RecordType.BASE_VALUE_CHANGED, base_value_name),
        )

    old: Dict[str, Any] = {"baseValue": old_value.to_document()}
    new: Dict[str, Any] = {"baseValue": value.to_document()}
    sheet.base_values[base_value_name] = value
    if base_value_name in COMBAT_BASE_VALUES:
        recalculate_combat(sheet, old, new)

    record = make_record(RecordType.BASE_VALUE_CHANGED, base_value_name, old, new)
    stored = commit(services, character, record)
    logger.info("Base value updated", character_id=character_id, base_value=base_value_name)
    return MutationResult(data={**header, "changes": {"old": old, "new": new}}, record=stored)
