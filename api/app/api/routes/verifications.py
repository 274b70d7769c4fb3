import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.core.security import get_human_principal
from app.messaging.bus import MessageBusError
from app.schemas.verifications import (
    VerificationCreateRequest,
    VerificationDataResultOut,
    VerificationDetailOut,
    VerificationOut,
)
from app.services.container import get_coordinator, get_queries
from app.services.errors import (
    RepositoryConflictError,
    RepositoryNotFoundError,
    RepositoryUnavailableError,
    RepositoryValidationError,
)

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("", response_model=VerificationOut, status_code=status.HTTP_201_CREATED)
async def create_verification(
    payload: VerificationCreateRequest,
    principal=Depends(get_human_principal),
    coordinator=Depends(get_coordinator),
) -> VerificationOut:
    try:
        principal.require_scopes({"verifications:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    logger.info("create verification inn=%s requested_types=%s", payload.inn, payload.requested_data_types)
    try:
        record = await coordinator.create_verification(
            payload.inn,
            payload.requested_data_types,
            principal.author,
        )
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except MessageBusError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    return VerificationOut.from_record(record)


@router.get("", response_model=list[VerificationOut])
async def list_verifications(
    limit: int | None = Query(default=None),
    offset: int | None = Query(default=None),
    queries=Depends(get_queries),
) -> list[VerificationOut]:
    try:
        records = await queries.list_verifications(limit=limit, offset=offset)
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return [VerificationOut.from_record(record) for record in records]


@router.get("/{verification_id}", response_model=VerificationDetailOut)
async def get_verification(verification_id: str, queries=Depends(get_queries)) -> VerificationDetailOut:
    try:
        view = await queries.get(verification_id)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return VerificationDetailOut.from_view(view)


@router.get("/{verification_id}/data", response_model=VerificationDataResultOut)
async def get_verification_data(verification_id: str, queries=Depends(get_queries)) -> VerificationDataResultOut:
    try:
        result = await queries.get_with_typed_view(verification_id)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return VerificationDataResultOut.from_result(result)
