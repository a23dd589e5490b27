"""HTTP route definitions for the entity service."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Header, HTTPException, Request, Response, status
from pydantic import BaseModel, Field, field_validator

from ..domain.contracts import BusinessEntityUpdate, CreateBusinessEntityInput
from ..domain.entity import BusinessEntity
from ..domain.identifiers import format_entity_id, validate_entity_id
from ..domain.service import BusinessEntityService
from ..errors import AllocationExhausted
from ..security.tokens import subject_from_authorization

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1")


class BusinessEntityResponse(BaseModel):
    """Serialised representation of a `BusinessEntity` aggregate."""

    entity_id: str
    display_id: str
    legacy_id: bool
    user_id: str
    name: str | None
    entity_type: str | None
    state: str | None
    status: str
    created_at: str
    updated_at: str

    @classmethod
    def from_domain(cls, entity: BusinessEntity) -> "BusinessEntityResponse":
        """Build a response model from the domain aggregate."""
        return cls(
            entity_id=entity.entity_id,
            display_id=format_entity_id(entity.entity_id),
            legacy_id=not validate_entity_id(entity.entity_id),
            user_id=entity.user_id,
            name=entity.name,
            entity_type=entity.entity_type,
            state=entity.state,
            status=entity.status,
            created_at=entity.created_at.isoformat(),
            updated_at=entity.updated_at.isoformat(),
        )


class BusinessEntityListResponse(BaseModel):
    items: list[BusinessEntityResponse]


class CreateBusinessEntityRequest(BaseModel):
    """Payload accepted when forming a new business entity."""

    name: str | None = Field(default=None, max_length=255)
    entity_type: str | None = Field(default=None, max_length=64)
    state: str | None = Field(default=None, max_length=64)
    status: str = Field(default="draft", min_length=1, max_length=64)


class UpdateBusinessEntityRequest(BaseModel):
    """Partial update body; omitted fields are left untouched."""

    name: str | None = Field(default=None, max_length=255)
    entity_type: str | None = Field(default=None, max_length=64)
    state: str | None = Field(default=None, max_length=64)
    status: str | None = Field(default=None, min_length=1, max_length=64)

    @field_validator("status")
    @classmethod
    def _status_not_null(cls, value: str | None) -> str | None:
        if value is None:
            raise ValueError("status cannot be null")
        return value


class LinkMailboxRequest(BaseModel):
    """Body used to attach a mailbox subscription to a business entity."""

    business_entity_id: str

    @field_validator("business_entity_id")
    @classmethod
    def _require_canonical_id(cls, value: str) -> str:
        if not validate_entity_id(value):
            raise ValueError("business_entity_id must be a 12-digit business entity id")
        return value


def get_service(request: Request) -> BusinessEntityService:
    """Resolve the `BusinessEntityService` stored on the FastAPI application state."""
    service: BusinessEntityService = request.app.state.entity_service
    return service


def get_current_user_id(authorization: str | None = Header(default=None)) -> str:
    """Return the caller's user id from the bearer token."""
    try:
        return subject_from_authorization(authorization)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc


@router.post(
    "/business-entities",
    response_model=BusinessEntityResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_business_entity(
    payload: CreateBusinessEntityRequest,
    user_id: str = Depends(get_current_user_id),
    service: BusinessEntityService = Depends(get_service),
) -> BusinessEntityResponse:
    """Allocate an id and create a business entity owned by the caller."""
    try:
        entity = service.create(
            CreateBusinessEntityInput(
                name=payload.name,
                entity_type=payload.entity_type,
                state=payload.state,
                status=payload.status,
            ),
            user_id,
        )
    except AllocationExhausted as exc:
        logger.warning("business entity creation for %s rejected: %s", user_id, exc)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="no business entity id available",
        ) from exc
    return BusinessEntityResponse.from_domain(entity)


@router.get("/business-entities", response_model=BusinessEntityListResponse)
def list_business_entities(
    user_id: str = Depends(get_current_user_id),
    service: BusinessEntityService = Depends(get_service),
) -> BusinessEntityListResponse:
    """List the caller's business entities in creation order."""
    entities = service.list_entities(user_id)
    return BusinessEntityListResponse(
        items=[BusinessEntityResponse.from_domain(entity) for entity in entities]
    )


@router.get("/business-entities/{entity_id}", response_model=BusinessEntityResponse)
def get_business_entity(
    entity_id: str,
    user_id: str = Depends(get_current_user_id),
    service: BusinessEntityService = Depends(get_service),
) -> BusinessEntityResponse:
    """Retrieve a business entity owned by the caller."""
    entity = service.read(entity_id, user_id)
    if entity is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="business entity not found")
    return BusinessEntityResponse.from_domain(entity)


@router.patch("/business-entities/{entity_id}", response_model=BusinessEntityResponse)
def update_business_entity(
    entity_id: str,
    payload: UpdateBusinessEntityRequest,
    user_id: str = Depends(get_current_user_id),
    service: BusinessEntityService = Depends(get_service),
) -> BusinessEntityResponse:
    """Apply a partial update to a business entity owned by the caller."""
    updates = BusinessEntityUpdate(
        name=payload.name,
        entity_type=payload.entity_type,
        state=payload.state,
        status=payload.status,
        cleared=frozenset(
            name for name in payload.model_fields_set if getattr(payload, name) is None
        ),
    )
    if not updates.changes():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="no fields to update")
    entity = service.update(entity_id, user_id, updates)
    if entity is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="business entity not found")
    return BusinessEntityResponse.from_domain(entity)


@router.put(
    "/mailbox-subscriptions/{subscription_id}/business-entity",
    status_code=status.HTTP_204_NO_CONTENT,
)
def link_mailbox_subscription(
    subscription_id: int,
    payload: LinkMailboxRequest,
    user_id: str = Depends(get_current_user_id),
    service: BusinessEntityService = Depends(get_service),
) -> Response:
    """Attach a mailbox subscription to one of the caller's business entities."""
    if service.read(payload.business_entity_id, user_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="business entity not found")
    service.link_mailbox(payload.business_entity_id, subscription_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
