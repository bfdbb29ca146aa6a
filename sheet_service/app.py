import uuid
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional
from uuid import UUID

import structlog
from fastapi import Depends, FastAPI, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .auth import get_user_id
from .config import Settings, get_settings
from .errors import SheetServiceError
from .logging_config import configure_logging, get_logger
from .models import (
    AttributeUpdateRequest,
    BaseValueUpdateRequest,
    CalculationPointsUpdateRequest,
    CharacterCreateRequest,
    CombatValuesUpdateRequest,
    CommentRequest,
    LevelRequest,
    LevelUpRequest,
    MutationResponse,
    SkillUpdateRequest,
    SpecialAbilityRequest,
)
from .mutations import attributes, base_values, calculation_points, characters, combat, history_records, level
from .mutations import skills, special_abilities
from .mutations.common import Services
from .storage_backends.factory import build_storage_backend

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_json)
    app.state.backend = build_storage_backend(settings)
    logger.info("Storage backend ready", data_path=str(settings.data_path))
    try:
        yield
    finally:
        app.state.backend.close()


app = FastAPI(
    title="Character Sheet Service",
    description="Character progression with an auditable, append-only change history",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_allow_origins,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-Id"],
)


def _error_response(
    error: str, message: str, request_id: Optional[str], details: Any, status_code: int
) -> JSONResponse:
    headers = {"X-Request-Id": request_id} if request_id else {}
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "message": message, "request_id": request_id, "details": details},
        headers=headers,
    )


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    request_id = request.headers.get("X-Request-Id") or uuid.uuid4().hex
    request.state.request_id = request_id
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id)
    response = await call_next(request)
    response.headers["X-Request-Id"] = request_id
    return response


@app.exception_handler(SheetServiceError)
async def sheet_service_error_handler(request: Request, exc: SheetServiceError):
    request_id = getattr(request.state, "request_id", None)
    exc.context.request_id = request_id
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        "Request failed",
        error=exc.error,
        status_code=exc.status_code,
        reason=exc.message,
        error_context=exc.context.to_dict(),
    )
    return _error_response(exc.error, exc.user_friendly, request_id, exc.details, exc.status_code)


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    request_id = getattr(request.state, "request_id", None)
    errors = [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
        for error in exc.errors()
    ]
    logger.warning("Request validation failed", errors=errors)
    return _error_response(
        "validation_error", "Invalid input", request_id, {"errors": errors}, status.HTTP_400_BAD_REQUEST
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    request_id = getattr(request.state, "request_id", None)
    return _error_response("http_error", str(exc.detail), request_id, {"status_code": exc.status_code}, exc.status_code)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    request_id = getattr(request.state, "request_id", None)
    logger.exception("Unhandled error", error_type=type(exc).__name__)
    return _error_response(
        "internal_error",
        "An internal error occurred!",
        request_id,
        {"type": type(exc).__name__},
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


def get_settings_dep() -> Settings:
    return get_settings()


def get_services(request: Request, settings: Settings = Depends(get_settings_dep)) -> Services:
    return Services.from_backend(request.app.state.backend, settings)


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


# Characters


@app.post("/characters", status_code=201)
def create_character(
    request: CharacterCreateRequest,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> MutationResponse:
    return MutationResponse.model_validate(characters.create_character(services, user_id, request).to_response())


@app.get("/characters")
def list_characters(
    user_id: str = Depends(get_user_id), services: Services = Depends(get_services)
) -> Dict[str, List[Dict[str, Any]]]:
    return characters.list_characters(services, user_id)


@app.get("/characters/{character_id}")
def get_character(
    character_id: UUID, user_id: str = Depends(get_user_id), services: Services = Depends(get_services)
) -> dict:
    return characters.get_character(services, user_id, str(character_id))


@app.delete("/characters/{character_id}")
def delete_character(
    character_id: UUID, user_id: str = Depends(get_user_id), services: Services = Depends(get_services)
) -> dict:
    return characters.delete_character(services, user_id, str(character_id))


@app.post("/characters/{character_id}/clone", status_code=201)
def clone_character(
    character_id: UUID, user_id: str = Depends(get_user_id), services: Services = Depends(get_services)
) -> MutationResponse:
    result = characters.clone_character(services, user_id, str(character_id))
    return MutationResponse.model_validate(result.to_response())


# Level


@app.post("/characters/{character_id}/level")
def increase_level(
    character_id: UUID,
    request: LevelRequest,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> MutationResponse:
    result = level.increase_level(services, user_id, str(character_id), request)
    return MutationResponse.model_validate(result.to_response())


@app.get("/characters/{character_id}/level-up")
def get_level_up(
    character_id: UUID, user_id: str = Depends(get_user_id), services: Services = Depends(get_services)
) -> dict:
    return level.get_level_up(services, user_id, str(character_id))


@app.post("/characters/{character_id}/level-up")
def apply_level_up(
    character_id: UUID,
    request: LevelUpRequest,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> MutationResponse:
    result = level.apply_level_up(services, user_id, str(character_id), request)
    return MutationResponse.model_validate(result.to_response())


# Sheet values


@app.patch("/characters/{character_id}/attributes/{attribute_name}")
def update_attribute(
    character_id: UUID,
    attribute_name: str,
    request: AttributeUpdateRequest,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> MutationResponse:
    result = attributes.update_attribute(services, user_id, str(character_id), attribute_name, request)
    return MutationResponse.model_validate(result.to_response())


@app.get("/characters/{character_id}/skills/{category}/{skill_name}")
def get_skill_increase_cost(
    character_id: UUID,
    category: str,
    skill_name: str,
    learning_method: Optional[str] = Query(None, alias="learning-method"),
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> dict:
    return skills.get_skill_increase_cost(services, user_id, str(character_id), category, skill_name, learning_method)


@app.patch("/characters/{character_id}/skills/{category}/{skill_name}")
def update_skill(
    character_id: UUID,
    category: str,
    skill_name: str,
    request: SkillUpdateRequest,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> MutationResponse:
    result = skills.update_skill(services, user_id, str(character_id), category, skill_name, request)
    return MutationResponse.model_validate(result.to_response())


@app.patch("/characters/{character_id}/combat/{combat_category}/{skill_name}")
def update_combat_values(
    character_id: UUID,
    combat_category: str,
    skill_name: str,
    request: CombatValuesUpdateRequest,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> MutationResponse:
    result = combat.update_combat_values(services, user_id, str(character_id), combat_category, skill_name, request)
    return MutationResponse.model_validate(result.to_response())


@app.patch("/characters/{character_id}/base-values/{base_value_name}")
def update_base_value(
    character_id: UUID,
    base_value_name: str,
    request: BaseValueUpdateRequest,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> MutationResponse:
    result = base_values.update_base_value(services, user_id, str(character_id), base_value_name, request)
    return MutationResponse.model_validate(result.to_response())


@app.patch("/characters/{character_id}/calculation-points")
def update_calculation_points(
    character_id: UUID,
    request: CalculationPointsUpdateRequest,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> MutationResponse:
    result = calculation_points.update_calculation_points(services, user_id, str(character_id), request)
    return MutationResponse.model_validate(result.to_response())


@app.post("/characters/{character_id}/special-abilities")
def add_special_ability(
    character_id: UUID,
    request: SpecialAbilityRequest,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> MutationResponse:
    result = special_abilities.add_special_ability(services, user_id, str(character_id), request)
    return MutationResponse.model_validate(result.to_response())


# History


@app.get("/characters/{character_id}/history")
def get_history(
    character_id: UUID,
    block_number: Optional[int] = Query(None, alias="block-number", ge=1),
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> dict:
    return history_records.get_history(services, user_id, str(character_id), block_number)


@app.patch("/characters/{character_id}/history/{record_id}")
def set_history_comment(
    character_id: UUID,
    record_id: UUID,
    request: CommentRequest,
    block_number: Optional[int] = Query(None, alias="block-number", ge=1),
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> dict:
    return history_records.set_comment(
        services, user_id, str(character_id), str(record_id), request.comment, block_number
    )


@app.post("/characters/{character_id}/history/{record_id}/revert")
def revert_history_record(
    character_id: UUID,
    record_id: UUID,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> MutationResponse:
    result = history_records.revert_latest(services, user_id, str(character_id), str(record_id))
    return MutationResponse.model_validate(result.to_response())


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run("sheet_service.app:app", host=settings.host, port=settings.port, access_log=True)
