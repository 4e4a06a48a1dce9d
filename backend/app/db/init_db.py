import logging
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import IndexModel, ASCENDING, DESCENDING
from pymongo.errors import OperationFailure

from .database import USERS_COLLECTION, KUDOS_COLLECTION

logger = logging.getLogger(__name__)

async def init_db_indexes(db: AsyncIOMotorDatabase) -> bool:
    """
    Initialize MongoDB indexes for the users and kudos collections.
    Called during application startup; creating an existing index is a no-op.
    """
    user_indexes = [
        # Seeded users share an empty externalId, so uniqueness only covers non-empty values
        IndexModel(
            [("externalId", ASCENDING)],
            name="user_external_id_unique",
            unique=True,
            partialFilterExpression={"externalId": {"$gt": ""}},
        ),
        IndexModel([("name", ASCENDING)], name="user_name_index"),
    ]

    kudos_indexes = [
        # Feed ordering
        IndexModel([("createdAt", DESCENDING)], name="kudos_created_at_index"),
        IndexModel([("toUserTeam", ASCENDING)], name="kudos_team_index"),
        IndexModel([("toUserId", ASCENDING)], name="kudos_to_user_index"),
        IndexModel([("fromUserId", ASCENDING)], name="kudos_from_user_index"),
    ]

    try:
        await db[USERS_COLLECTION].create_indexes(user_indexes)
        await db[KUDOS_COLLECTION].create_indexes(kudos_indexes)
        logger.info("Database indexes ensured.")
        return True
    except OperationFailure as e:
        logger.warning(f"Could not create indexes (continuing startup): {e.details}")
        return False
