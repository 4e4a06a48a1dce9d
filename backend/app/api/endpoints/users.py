# app/api/endpoints/users.py

import logging
from typing import List
from fastapi import APIRouter, Depends, status

from app.models.user import User
from app.db import crud
from app.core.identity import Identity
from app.core.security import get_current_identity

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/users",
    tags=["Users"]
)

@router.get(
    "",
    response_model=List[User],
    status_code=status.HTTP_200_OK,
    summary="List all users (Protected)",
    description="Returns every user sorted by name, for picking a kudos recipient."
)
async def read_users(identity: Identity = Depends(get_current_identity)):
    logger.info(f"User {identity.external_id or '<unknown>'} listing users.")
    return await crud.get_all_users()
