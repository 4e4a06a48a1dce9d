# app/api/endpoints/kudos.py

import logging
from typing import Optional
from fastapi import APIRouter, Depends, Query, status

from app.models.kudos import (
    DeleteResult,
    Kudos,
    KudosCreateRequest,
    KudosPage,
    ModerationResult,
    VisibilityUpdateRequest,
)
from app.core.identity import Identity
from app.core.security import get_current_identity
from app.api.deps import get_kudos_service
from app.services.kudos_service import KudosService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/kudos",
    tags=["Kudos"]
)

@router.get(
    "",
    response_model=KudosPage,
    status_code=status.HTTP_200_OK,
    summary="Get the kudos feed (Protected)",
    description=(
        "Paginated, newest-first kudos feed with optional team, search, recipient and sender filters. "
        "Hidden kudos are only included for admins."
    )
)
async def read_kudos(
    page: Optional[int] = Query(None, description="1-based page number"),
    page_size: Optional[int] = Query(None, alias="pageSize", description="Items per page, clamped to 1-100"),
    team: Optional[str] = Query(None, description="Recipient team (exact match)"),
    search: Optional[str] = Query(None, description="Case-insensitive text in message, recipient or sender name"),
    to_user_id: Optional[str] = Query(None, alias="toUserId"),
    from_user_id: Optional[str] = Query(None, alias="fromUserId"),
    identity: Identity = Depends(get_current_identity),
    service: KudosService = Depends(get_kudos_service),
):
    return await service.list_kudos(
        identity,
        page=page,
        page_size=page_size,
        team=team,
        search=search,
        to_user_id=to_user_id,
        from_user_id=from_user_id,
    )

@router.post(
    "",
    response_model=Kudos,
    status_code=status.HTTP_200_OK,
    summary="Send kudos (Protected)",
    description=(
        "Creates a kudos for the given recipient. First-time senders get a user record "
        "in the 'Unassigned' team."
    ),
    responses={
        400: {"description": "Recipient or message missing, or message longer than 240 characters"},
        401: {"description": "No external identity in credentials"},
        404: {"description": "Recipient not found"},
    }
)
async def create_kudos(
    kudos_in: KudosCreateRequest,
    identity: Identity = Depends(get_current_identity),
    service: KudosService = Depends(get_kudos_service),
):
    logger.info(f"User {identity.external_id or '<unknown>'} sending kudos to {kudos_in.to_user_id}")
    return await service.create_kudos(kudos_in, identity)

@router.patch(
    "/{kudos_id}/visibility",
    response_model=ModerationResult,
    status_code=status.HTTP_200_OK,
    summary="Hide or show a kudos (Admin Only)",
    responses={
        403: {"description": "User does not have admin privileges"},
        404: {"description": "Kudos not found"},
    }
)
async def update_kudos_visibility(
    kudos_id: str,
    update: VisibilityUpdateRequest,
    identity: Identity = Depends(get_current_identity),
    service: KudosService = Depends(get_kudos_service),
):
    return await service.set_visibility(kudos_id, update, identity)

@router.delete(
    "/{kudos_id}",
    response_model=DeleteResult,
    status_code=status.HTTP_200_OK,
    summary="Permanently delete a kudos (Admin Only)",
    responses={
        403: {"description": "User does not have admin privileges"},
        404: {"description": "Kudos not found"},
    }
)
async def delete_kudos(
    kudos_id: str,
    identity: Identity = Depends(get_current_identity),
    service: KudosService = Depends(get_kudos_service),
):
    return await service.delete_kudos(kudos_id, identity)
