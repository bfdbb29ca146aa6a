from typing import Any, Dict

from ..errors import ConflictError, ErrorContext, ValidationError
from ..logging_config import get_logger
from ..models import AttributeUpdateRequest, RecordType
from ..rules.catalog import COMBAT_BASE_VALUES
from ..rules.cost import ATTRIBUTE_INCREASE_COST
from ..rules.formulas import recalculate_base_values
from .common import (
    MutationResult,
    Services,
    character_header,
    commit,
    initial_increased,
    initial_new,
    load_for_update,
    make_record,
    points_change,
    recalculate_combat,
    replayed_record,
)

logger = get_logger(__name__)


def update_attribute(
    services: Services,
    user_id: str,
    character_id: str,
    attribute_name: str,
    request: AttributeUpdateRequest,
) -> MutationResult:
    character, recovered = load_for_update(services, user_id, character_id)
    sheet = character.character_sheet
    context = ErrorContext(
        character_id=character_id, user_id=user_id, operation="update_attribute", field=attribute_name
    )
    if attribute_name not in sheet.attributes:
        raise ValidationError(f"Unknown attribute '{attribute_name}'", context)

    old_attribute = sheet.attributes[attribute_name]
    attribute = old_attribute.model_copy()
    old_points = sheet.calculation_points.attribute_points
    points = old_points.model_copy()

    if request.start is not None:
        attribute.start = initial_new(attribute.start, request.start, "start", context)

    if request.current is not None:
        target = initial_increased(attribute.current, request.current, "current", context)
        increase = target - attribute.current
        cost = increase * ATTRIBUTE_INCREASE_COST
        if cost > points.available:
            raise ConflictError(
                f"Not enough attribute points to increase '{attribute_name}'",
                context,
                details={"required": cost, "available": points.available},
            )
        attribute.current = target
        attribute.total_cost += cost
        points.available -= cost

    if request.mod is not None:
        attribute.mod = initial_new(attribute.mod, request.mod, "mod", context)

    header = {**character_header(character), "attributeName": attribute_name}
    if attribute == old_attribute:
        logger.info("Attribute unchanged, replay", character_id=character_id, attribute=attribute_name)
        return MutationResult(
            data={**header, "attribute": attribute.to_document()},
            record=replayed_record(recovered, RecordType.ATTRIBUTE_CHANGED, attribute_name),
        )

    old: Dict[str, Any] = {"attribute": old_attribute.to_document()}
    new: Dict[str, Any] = {"attribute": attribute.to_document()}
    sheet.attributes[attribute_name] = attribute
    sheet.calculation_points.attribute_points = points

    changed_base_values = recalculate_base_values(sheet.base_values, sheet.attributes)
    if changed_base_values:
        old["baseValues"] = {name: sheet.base_values[name].to_document() for name in changed_base_values}
        new["baseValues"] = {name: value.to_document() for name, value in changed_base_values.items()}
        sheet.base_values.update(changed_base_values)

        if any(name in COMBAT_BASE_VALUES for name in changed_base_values):
            recalculate_combat(sheet, old, new)

    attribute_points = points_change(old_points, points)
    record = make_record(RecordType.ATTRIBUTE_CHANGED, attribute_name, old, new, attribute_points=attribute_points)
    stored = commit(services, character, record)
    logger.info("Attribute updated", character_id=character_id, attribute=attribute_name)

    data: Dict[str, Any] = {**header, "changes": {"old": old, "new": new}}
    if attribute_points is not None:
        data["attributePoints"] = attribute_points.to_document()
    return MutationResult(data=data, record=stored)
