# app/db/crud.py

# --- Core Imports ---
from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from typing import List, Optional, Dict, Any
from datetime import datetime
import logging
import re

# --- Database Access ---
from .database import get_users_collection, get_kudos_collection

# --- Pydantic Models ---
from app.models.user import User, UserCreate
from app.models.kudos import Kudos, KudosCreate

# --- Logging Setup ---
logger = logging.getLogger(__name__)

# Newest first; _id breaks ties between equal timestamps
KUDOS_SORT = [("createdAt", DESCENDING), ("_id", DESCENDING)]

# --- Helper Functions ---
def parse_object_id(value: Optional[str]) -> Optional[ObjectId]:
    """Returns the ObjectId for a string id, or None when it is not one."""
    if not value:
        return None
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None

def _map_id(doc: Dict[str, Any]) -> Dict[str, Any]:
    mapped_data = {**doc}
    mapped_data["id"] = str(mapped_data.pop("_id"))
    return mapped_data

def visibility_filter(include_hidden: bool = False) -> Dict[str, Any]:
    if include_hidden: return {}
    # Records written before the flag existed count as visible
    return {"isVisible": {"$ne": False}}

def build_kudos_filter(
    team: Optional[str] = None,
    search: Optional[str] = None,
    to_user_id: Optional[str] = None,
    from_user_id: Optional[str] = None,
    include_hidden: bool = False,
) -> Dict[str, Any]:
    """
    Composes the kudos feed query. Every provided filter is ANDed; the search
    term is matched case-insensitively as a literal substring of the message,
    recipient name or sender name.
    """
    query: Dict[str, Any] = visibility_filter(include_hidden)

    if team and team.strip():
        query["toUserTeam"] = team
    if to_user_id and to_user_id.strip():
        query["toUserId"] = to_user_id
    if from_user_id and from_user_id.strip():
        query["fromUserId"] = from_user_id

    if search and search.strip():
        pattern = {"$regex": re.escape(search.strip()), "$options": "i"}
        query["$or"] = [
            {"message": pattern},
            {"toUserName": pattern},
            {"fromUserName": pattern},
        ]

    return query

# --- User CRUD Functions ---
async def get_all_users() -> List[User]:
    """All users sorted by name."""
    collection = get_users_collection()
    cursor = collection.find({}).sort("name", ASCENDING)
    return [User(**_map_id(doc)) async for doc in cursor]

async def get_user_by_id(user_id: str) -> Optional[User]:
    object_id = parse_object_id(user_id)
    if object_id is None:
        logger.info(f"User id '{user_id}' is not a valid ObjectId.")
        return None
    user_doc = await get_users_collection().find_one({"_id": object_id})
    if user_doc:
        return User(**_map_id(user_doc))
    logger.info(f"User {user_id} not found.")
    return None

async def get_user_by_external_id(external_id: str) -> Optional[User]:
    if not external_id:
        return None
    user_doc = await get_users_collection().find_one({"externalId": external_id})
    if user_doc:
        return User(**_map_id(user_doc))
    return None

async def create_user(user_in: UserCreate) -> User:
    user_doc = user_in.model_dump(by_alias=True)
    logger.info(f"Inserting user '{user_in.name}' (externalId={user_in.external_id or '-'})")
    result = await get_users_collection().insert_one(user_doc)
    return User(id=str(result.inserted_id), **user_in.model_dump())

# --- Kudos CRUD Functions ---
async def count_kudos(query: Dict[str, Any]) -> int:
    return await get_kudos_collection().count_documents(query)

async def find_kudos(query: Dict[str, Any], skip: int = 0, limit: int = 12) -> List[Kudos]:
    cursor = get_kudos_collection().find(query).sort(KUDOS_SORT).skip(skip).limit(limit)
    return [Kudos(**_map_id(doc)) async for doc in cursor]

async def get_kudos_by_id(kudos_id: str) -> Optional[Kudos]:
    object_id = parse_object_id(kudos_id)
    if object_id is None:
        logger.info(f"Kudos id '{kudos_id}' is not a valid ObjectId.")
        return None
    kudos_doc = await get_kudos_collection().find_one({"_id": object_id})
    if kudos_doc:
        return Kudos(**_map_id(kudos_doc))
    logger.info(f"Kudos {kudos_id} not found.")
    return None

async def create_kudos(kudos_in: KudosCreate) -> Kudos:
    kudos_doc = kudos_in.model_dump(by_alias=True)
    result = await get_kudos_collection().insert_one(kudos_doc)
    logger.info(f"Inserted kudos {result.inserted_id} from {kudos_in.from_user_id} to {kudos_in.to_user_id}")
    return Kudos(id=str(result.inserted_id), **kudos_in.model_dump())

async def update_kudos_moderation(
    kudos_id: str,
    is_visible: bool,
    moderated_by: str,
    moderated_at: datetime,
    moderation_reason: str,
) -> Optional[Kudos]:
    """Sets visibility and moderation metadata in one update; None if the kudos is gone."""
    object_id = parse_object_id(kudos_id)
    if object_id is None:
        return None
    update_data = {
        "isVisible": is_visible,
        "moderatedBy": moderated_by,
        "moderatedAt": moderated_at,
        "moderationReason": moderation_reason,
    }
    logger.info(f"Updating moderation for kudos {kudos_id}: {update_data}")
    updated_doc = await get_kudos_collection().find_one_and_update(
        {"_id": object_id},
        {"$set": update_data},
        return_document=ReturnDocument.AFTER,
    )
    if updated_doc:
        return Kudos(**_map_id(updated_doc))
    logger.warning(f"Kudos {kudos_id} not found during moderation update.")
    return None

async def delete_kudos(kudos_id: str) -> bool:
    object_id = parse_object_id(kudos_id)
    if object_id is None:
        return False
    result = await get_kudos_collection().delete_one({"_id": object_id})
    if result.deleted_count == 1:
        logger.info(f"Hard deleted kudos {kudos_id}")
        return True
    logger.warning(f"Kudos {kudos_id} not found or already deleted.")
    return False
