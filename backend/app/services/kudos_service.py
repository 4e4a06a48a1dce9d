# app/services/kudos_service.py
"""
Kudos create / list / moderate / delete.

The dry-run flag is fixed when the service is constructed. With dry-run on,
every read and validation step runs as usual but no insert, update or delete
reaches the store; sentinel ids mark the simulated writes instead.
"""

import logging
from typing import Optional, Tuple
from datetime import datetime, timezone
from pymongo.errors import DuplicateKeyError

from app.core.exceptions import AuthorizationFailure, NotFound, ValidationFailure
from app.core.identity import Identity
from app.db import crud
from app.models.kudos import (
    DRY_RUN_KUDOS_ID,
    MAX_MESSAGE_LENGTH,
    DeleteResult,
    Kudos,
    KudosCreate,
    KudosCreateRequest,
    KudosPage,
    ModerationResult,
    VisibilityUpdateRequest,
)
from app.models.user import UNASSIGNED_TEAM, User, UserCreate

logger = logging.getLogger(__name__)

DEFAULT_PAGE = 1
DEFAULT_PAGE_SIZE = 12
MIN_PAGE_SIZE = 1
MAX_PAGE_SIZE = 100
# Keeps skip well inside the int64 range the store accepts
MAX_PAGE = 1_000_000


def clamp_paging(page: Optional[int], page_size: Optional[int]) -> Tuple[int, int]:
    """Page is clamped into [1, MAX_PAGE]; page size into [1, 100]."""
    current_page = page if page is not None else DEFAULT_PAGE
    current_page = min(MAX_PAGE, max(DEFAULT_PAGE, current_page))
    size = page_size if page_size is not None else DEFAULT_PAGE_SIZE
    size = min(MAX_PAGE_SIZE, max(MIN_PAGE_SIZE, size))
    return current_page, size


class KudosService:
    def __init__(self, dry_run: bool = False):
        self.dry_run = dry_run

    async def list_kudos(
        self,
        caller: Identity,
        page: Optional[int] = None,
        page_size: Optional[int] = None,
        team: Optional[str] = None,
        search: Optional[str] = None,
        to_user_id: Optional[str] = None,
        from_user_id: Optional[str] = None,
    ) -> KudosPage:
        """Newest-first page of kudos. Hidden kudos are only returned to admins."""
        current_page, size = clamp_paging(page, page_size)
        query = crud.build_kudos_filter(
            team=team,
            search=search,
            to_user_id=to_user_id,
            from_user_id=from_user_id,
            include_hidden=caller.is_admin,
        )

        total = await crud.count_kudos(query)
        items = await crud.find_kudos(query, skip=(current_page - 1) * size, limit=size)
        logger.debug(f"Listed {len(items)} of {total} kudos (page={current_page}, size={size}, admin={caller.is_admin})")

        return KudosPage(
            page=current_page,
            page_size=size,
            total=total,
            dry_run=self.dry_run,
            items=items,
        )

    async def _get_or_create_sender(self, caller: Identity) -> User:
        external_id = caller.require_external_id()
        sender = await crud.get_user_by_external_id(external_id)
        if sender is not None:
            return sender

        new_user = UserCreate(name=caller.display_name, team=UNASSIGNED_TEAM, external_id=external_id)
        if self.dry_run:
            logger.info(f"[dry-run] Would create user for external id {external_id}")
            return User(id=external_id, **new_user.model_dump())

        logger.info(f"Creating user record for first-time sender {external_id}")
        try:
            return await crud.create_user(new_user)
        except DuplicateKeyError:
            # A concurrent request from the same identity inserted the record first
            existing = await crud.get_user_by_external_id(external_id)
            if existing is None:
                raise
            logger.info(f"Reusing user record created concurrently for {external_id}")
            return existing

    async def create_kudos(self, request: KudosCreateRequest, caller: Identity) -> Kudos:
        to_user_id = (request.to_user_id or "").strip()
        message = (request.message or "").strip()

        if not to_user_id or not message:
            raise ValidationFailure("Recipient and message are required.")
        if len(message) > MAX_MESSAGE_LENGTH:
            raise ValidationFailure(f"Message must be {MAX_MESSAGE_LENGTH} characters or less.")

        sender = await self._get_or_create_sender(caller)

        recipient = await crud.get_user_by_id(to_user_id)
        if recipient is None:
            raise NotFound("User not found.")

        kudos_in = KudosCreate(
            to_user_id=recipient.id,
            to_user_name=recipient.name,
            to_user_team=recipient.team,
            from_user_id=sender.id,
            from_user_name=sender.name if sender.name.strip() else caller.email,
            from_user_team=sender.team,
            message=message,
            created_at=datetime.now(timezone.utc),
            is_visible=True,
        )

        if self.dry_run:
            logger.info(f"[dry-run] Would create kudos from {sender.id} to {recipient.id}")
            return Kudos(id=DRY_RUN_KUDOS_ID, **kudos_in.model_dump())

        return await crud.create_kudos(kudos_in)

    async def set_visibility(
        self,
        kudos_id: str,
        update: VisibilityUpdateRequest,
        caller: Identity,
    ) -> ModerationResult:
        if not caller.is_admin:
            logger.warning(f"Non-admin {caller.external_id or '<unknown>'} attempted to moderate kudos {kudos_id}")
            raise AuthorizationFailure("Admin access required.")
        moderator_id = caller.require_external_id()

        kudos = await crud.get_kudos_by_id(kudos_id)
        if kudos is None:
            raise NotFound("Kudos not found.")

        moderated_at = datetime.now(timezone.utc)
        reason = update.reason or ""

        if not self.dry_run:
            updated = await crud.update_kudos_moderation(
                kudos_id,
                is_visible=update.is_visible,
                moderated_by=moderator_id,
                moderated_at=moderated_at,
                moderation_reason=reason,
            )
            if updated is None:
                # Deleted between the lookup and the update
                raise NotFound("Kudos not found.")
        else:
            logger.info(f"[dry-run] Would set kudos {kudos_id} visibility to {update.is_visible}")

        logger.info(f"Kudos {kudos_id} visibility set to {update.is_visible} by {moderator_id} (dry_run={self.dry_run})")
        return ModerationResult(
            id=kudos.id,
            is_visible=update.is_visible,
            moderated_by=moderator_id,
            moderated_at=moderated_at,
            moderation_reason=reason,
            dry_run=self.dry_run,
        )

    async def delete_kudos(self, kudos_id: str, caller: Identity) -> DeleteResult:
        if not caller.is_admin:
            logger.warning(f"Non-admin {caller.external_id or '<unknown>'} attempted to delete kudos {kudos_id}")
            raise AuthorizationFailure("Admin access required.")

        kudos = await crud.get_kudos_by_id(kudos_id)
        if kudos is None:
            raise NotFound("Kudos not found.")

        if not self.dry_run:
            if not await crud.delete_kudos(kudos_id):
                raise NotFound("Kudos not found.")
        else:
            logger.info(f"[dry-run] Would delete kudos {kudos_id}")

        logger.info(f"Kudos {kudos_id} deleted by {caller.external_id} (dry_run={self.dry_run})")
        return DeleteResult(id=kudos.id, dry_run=self.dry_run)
