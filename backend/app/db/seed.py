# app/db/seed.py
"""
Baseline data for an empty database.

Both steps act only on a completely empty collection, so running them on
every process start never duplicates or overwrites existing records.
"""

import logging
from typing import List
from datetime import datetime, timedelta, timezone
from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase

from .database import USERS_COLLECTION, KUDOS_COLLECTION
from app.models.user import UserCreate
from app.models.kudos import KudosCreate

logger = logging.getLogger(__name__)

SEED_USERS = [
    ("Avery Johnson", "Engineering"),
    ("Jordan Lee", "Product"),
    ("Riley Patel", "Design"),
    ("Morgan Chen", "Customer Success"),
    ("Casey Rivera", "Data"),
]

# (recipient index, sender index, message, minutes ago)
SEED_KUDOS = [
    (0, 1, "Thanks for jumping in to help unblock the release.", 45),
    (1, 2, "Great insights during the customer call today!", 30),
    (2, 0, "Appreciate the quick turnaround on the dashboard update.", 10),
]


async def ensure_users(users: AsyncIOMotorCollection) -> int:
    """Inserts the seed users when the collection is empty. Returns the number inserted."""
    if await users.find_one({}) is not None:
        logger.info("Users collection already populated; skipping user seed.")
        return 0

    seed_docs = [
        UserCreate(name=name, team=team, external_id="").model_dump(by_alias=True)
        for name, team in SEED_USERS
    ]
    await users.insert_many(seed_docs)
    logger.info(f"Seeded {len(seed_docs)} users.")
    return len(seed_docs)


async def ensure_kudos(kudos: AsyncIOMotorCollection, users: AsyncIOMotorCollection) -> int:
    """Inserts sample kudos between the first seeded users when the kudos collection is empty."""
    if await kudos.find_one({}) is not None:
        logger.info("Kudos collection already populated; skipping kudos seed.")
        return 0

    user_docs: List[dict] = await users.find({}).sort("_id", 1).to_list(length=3)
    if len(user_docs) < 2:
        logger.info("Fewer than two users available; skipping kudos seed.")
        return 0

    # With only two users the third slot falls back to the first
    participants = user_docs if len(user_docs) > 2 else [user_docs[0], user_docs[1], user_docs[0]]
    now = datetime.now(timezone.utc)

    seed_docs = []
    for to_index, from_index, message, minutes_ago in SEED_KUDOS:
        to_user = participants[to_index]
        from_user = participants[from_index]
        seed_docs.append(
            KudosCreate(
                to_user_id=str(to_user["_id"]),
                to_user_name=to_user.get("name", ""),
                to_user_team=to_user.get("team", ""),
                from_user_id=str(from_user["_id"]),
                from_user_name=from_user.get("name", ""),
                from_user_team=from_user.get("team", ""),
                message=message,
                created_at=now - timedelta(minutes=minutes_ago),
                is_visible=True,
            ).model_dump(by_alias=True)
        )

    await kudos.insert_many(seed_docs)
    logger.info(f"Seeded {len(seed_docs)} sample kudos.")
    return len(seed_docs)


async def seed_database(db: AsyncIOMotorDatabase, include_sample_kudos: bool) -> None:
    """Runs the user seed and, outside production, the sample kudos seed."""
    users = db[USERS_COLLECTION]
    await ensure_users(users)
    if include_sample_kudos:
        await ensure_kudos(db[KUDOS_COLLECTION], users)
