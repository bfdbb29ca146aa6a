"""
History views, record comments and reverting the latest change.

A revert never removes the reverted record. It restores the sheet state
captured in the record's ``data.old`` (and the calculation points' old
values) and appends a new record of the same type with old and new
swapped. The revert record id is derived from the reverted record id, so a
retried revert finds its own record and does nothing.
"""

import uuid
from typing import Any, Dict, Optional

from ..errors import ConflictError, ErrorContext, ValidationError
from ..logging_config import get_logger
from ..models import (
    Attribute,
    BaseValue,
    CharacterSheet,
    CombatValues,
    LevelUpProgress,
    PointsChange,
    Record,
    RecordType,
    Skill,
)
from .common import (
    MutationResult,
    Services,
    character_header,
    commit,
    load_character,
    load_for_update,
    make_record,
)

logger = get_logger(__name__)

REVERT_NAMESPACE = "revert"


def revert_record_id(record_id: str) -> str:
    return str(uuid.uuid5(uuid.UUID(record_id), REVERT_NAMESPACE))


def get_history(
    services: Services, user_id: str, character_id: str, block_number: Optional[int] = None
) -> Dict[str, Any]:
    load_character(services, user_id, character_id)
    if block_number is None:
        blocks = services.ledger.latest(character_id, limit=1)
    else:
        blocks = [services.ledger.by_block_number(character_id, block_number)]

    if not blocks:
        return {"previousBlockNumber": None, "previousBlockId": None, "items": []}
    block = blocks[0]
    return {
        "previousBlockNumber": block.block_number - 1 if block.block_number > 1 else None,
        "previousBlockId": block.previous_block_id,
        "items": [block.to_document() for block in blocks],
    }


def set_comment(
    services: Services,
    user_id: str,
    character_id: str,
    record_id: str,
    comment: str,
    block_number: Optional[int] = None,
) -> Dict[str, Any]:
    load_character(services, user_id, character_id)
    block, record = services.ledger.set_comment(character_id, record_id, comment, block_number)
    logger.info("History comment set", character_id=character_id, record_id=record_id)
    return {
        "characterId": character_id,
        "blockNumber": block.block_number,
        "recordId": record.id,
        "comment": record.comment,
    }


def _split_skill_name(name: str) -> tuple:
    category, _, rest = name.partition("/")
    return category, rest.split(" ", 1)[0]


def _restore(sheet: CharacterSheet, record: Record) -> None:
    old = record.data.old

    if record.type == RecordType.LEVEL_CHANGED:
        sheet.general_information.level = old["value"]
        if "levelUpProgress" in old:
            sheet.general_information.level_up_progress = LevelUpProgress.model_validate(old["levelUpProgress"])
    elif record.type == RecordType.ATTRIBUTE_CHANGED:
        sheet.attributes[record.name] = Attribute.model_validate(old["attribute"])
    elif record.type == RecordType.BASE_VALUE_CHANGED:
        sheet.base_values[record.name] = BaseValue.model_validate(old["baseValue"])
    elif record.type == RecordType.SKILL_CHANGED:
        category, skill_name = _split_skill_name(record.name)
        sheet.skills[category][skill_name] = Skill.model_validate(old["skill"])
    elif record.type == RecordType.SPECIAL_ABILITIES_CHANGED:
        sheet.special_abilities = list(old["values"])

    for name, value in old.get("baseValues", {}).items():
        sheet.base_values[name] = BaseValue.model_validate(value)
    for category, skills in old.get("combatValues", {}).items():
        for skill_name, values in skills.items():
            sheet.combat_values[category][skill_name] = CombatValues.model_validate(values)
    if "specialAbilities" in old:
        sheet.special_abilities = list(old["specialAbilities"])

    points = record.calculation_points
    if points.adventure_points is not None:
        sheet.calculation_points.adventure_points = points.adventure_points.old
    if points.attribute_points is not None:
        sheet.calculation_points.attribute_points = points.attribute_points.old


def _swap(change: Optional[PointsChange]) -> Optional[PointsChange]:
    if change is None:
        return None
    return PointsChange(old=change.new, new=change.old)


def revert_latest(services: Services, user_id: str, character_id: str, record_id: str) -> MutationResult:
    character, recovered = load_for_update(services, user_id, character_id)
    context = ErrorContext(
        character_id=character_id, user_id=user_id, operation="revert_history_record", metadata={"record_id": record_id}
    )
    latest = services.ledger.latest_record(character_id)
    revert_id = revert_record_id(record_id)
    header = {**character_header(character), "revertedRecordId": record_id}

    if latest.id == revert_id:
        logger.info("Record already reverted, replay", character_id=character_id, record_id=record_id)
        return MutationResult(
            data={**header, "changes": {"old": latest.data.old, "new": latest.data.new}},
            record=recovered if recovered is not None and recovered.id == revert_id else None,
        )
    if latest.id != record_id:
        raise ConflictError("Only the latest history record can be reverted", context)
    if latest.type == RecordType.CHARACTER_CREATED:
        raise ValidationError("The creation of a character can't be reverted", context)

    _restore(character.character_sheet, latest)
    record = make_record(
        latest.type,
        latest.name,
        old=latest.data.new,
        new=latest.data.old,
        learning_method=latest.learning_method,
        adventure_points=_swap(latest.calculation_points.adventure_points),
        attribute_points=_swap(latest.calculation_points.attribute_points),
        comment=f"Revert of record #{latest.number}",
        record_id=revert_id,
    )
    stored = commit(services, character, record)
    logger.info("History record reverted", character_id=character_id, record_id=record_id, number=latest.number)
    return MutationResult(data={**header, "changes": {"old": record.data.old, "new": record.data.new}}, record=stored)
