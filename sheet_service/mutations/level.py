from typing import Any, Dict

from ..errors import ConflictError, ErrorContext
from ..logging_config import get_logger
from ..models import MAX_LEVEL, LevelRequest, LevelUpRequest, RecordType
from ..rules.level_up import compute_options, options_hash, plan_level_up
from .common import (
    MutationResult,
    Services,
    character_header,
    commit,
    load_character,
    load_for_update,
    make_record,
    replayed_record,
)

logger = get_logger(__name__)


def increase_level(services: Services, user_id: str, character_id: str, request: LevelRequest) -> MutationResult:
    character, recovered = load_for_update(services, user_id, character_id)
    info = character.character_sheet.general_information
    context = ErrorContext(character_id=character_id, user_id=user_id, operation="increase_level")

    if request.initial_level + 1 == info.level:
        logger.info("Level already increased, replay", character_id=character_id, level=info.level)
        return MutationResult(
            data={
                **character_header(character),
                "level": {"old": {"value": request.initial_level}, "new": {"value": info.level}},
            },
            record=replayed_record(recovered, RecordType.LEVEL_CHANGED, "level"),
        )
    if request.initial_level != info.level:
        raise ConflictError(
            f"Level mismatch: expected {request.initial_level}, current level is {info.level}",
            context,
        )
    if info.level >= MAX_LEVEL:
        raise ConflictError("Maximum level reached", context)

    old = {"value": info.level}
    info.level += 1
    new = {"value": info.level}

    record = make_record(RecordType.LEVEL_CHANGED, "level", old, new)
    stored = commit(services, character, record)
    logger.info("Level increased", character_id=character_id, level=info.level)
    return MutationResult(data={**character_header(character), "level": {"old": old, "new": new}}, record=stored)


def get_level_up(services: Services, user_id: str, character_id: str) -> Dict[str, Any]:
    character = load_character(services, user_id, character_id)
    info = character.character_sheet.general_information
    if info.level >= MAX_LEVEL:
        raise ConflictError(
            "Maximum level reached",
            ErrorContext(character_id=character_id, user_id=user_id, operation="get_level_up"),
        )
    options = compute_options(info.level, info.level_up_progress)
    return {
        **character_header(character),
        "nextLevel": info.level + 1,
        "options": [option.to_document() for option in options],
        "optionsHash": options_hash(character_id, info.level, info.level_up_progress),
    }


def apply_level_up(services: Services, user_id: str, character_id: str, request: LevelUpRequest) -> MutationResult:
    character, _ = load_for_update(services, user_id, character_id)
    plan = plan_level_up(character_id, character.character_sheet, request)
    character.character_sheet = plan.sheet

    record = make_record(RecordType.LEVEL_CHANGED, f"levelUp/{plan.effect.kind.value}", plan.old, plan.new)
    stored = commit(services, character, record)
    logger.info(
        "Level-up applied",
        character_id=character_id,
        level=plan.new["value"],
        effect=plan.effect.kind.value,
    )
    return MutationResult(
        data={
            **character_header(character),
            "changes": {"old": plan.old, "new": plan.new},
            "effect": plan.effect.to_document(),
        },
        record=stored,
    )
