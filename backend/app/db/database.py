# app/db/database.py
import motor.motor_asyncio
import logging
from typing import Optional, Dict, Any
from datetime import datetime, timezone

from app.core.config import settings, PROJECT_NAME

logger = logging.getLogger(f"{PROJECT_NAME}.db")

USERS_COLLECTION = "users"
KUDOS_COLLECTION = "kudos"
EXPECTED_COLLECTIONS = [USERS_COLLECTION, KUDOS_COLLECTION]

# Client and database handles, set once at startup
_client: Optional[motor.motor_asyncio.AsyncIOMotorClient] = None
_db: Optional[motor.motor_asyncio.AsyncIOMotorDatabase] = None

async def connect_to_mongo() -> bool:
    """
    Establishes the connection to the configured MongoDB database.

    Returns:
        bool: True if connection successful, False otherwise.
    """
    global _client, _db

    if _db is not None:
        logger.info("Database connection already established.")
        return True

    if not settings.MONGODB_URL:
        logger.error("FATAL ERROR: MONGODB_URL is not configured.")
        return False

    logger.info(f"Attempting to connect to MongoDB database: '{settings.DB_NAME}'...")
    try:
        _client = motor.motor_asyncio.AsyncIOMotorClient(
            settings.MONGODB_URL,
            tls=settings.MONGODB_TLS,
            serverSelectionTimeoutMS=10000,
            maxPoolSize=10,
            tz_aware=True,
        )
        await _client.admin.command('ping')
        logger.info("MongoDB server ping successful.")

        _db = _client[settings.DB_NAME]
        logger.info(f"Successfully connected to MongoDB database: '{settings.DB_NAME}'")
        return True

    except Exception as e:
        logger.error(f"ERROR: Could not connect to MongoDB: {e}", exc_info=True)
        _client = None
        _db = None
        return False

async def close_mongo_connection():
    """Closes the MongoDB connection and resets state."""
    global _client, _db
    if _client:
        logger.info("Closing MongoDB connection...")
        _client.close()
        logger.info("MongoDB connection closed.")
        _client = None
        _db = None
    else:
        logger.info("No active MongoDB connection to close.")

def get_database() -> Optional[motor.motor_asyncio.AsyncIOMotorDatabase]:
    """
    Returns the database instance.
    Relies on connect_to_mongo() being called successfully at app startup.
    """
    if _db is None:
        logger.warning("Warning: Database instance is not initialized! Check connection.")
    return _db

def get_collection(collection_name: str) -> motor.motor_asyncio.AsyncIOMotorCollection:
    """Returns a collection handle; raises if the database was never connected."""
    db = get_database()
    if db is None:
        raise RuntimeError("Database connection not available (db is None).")
    return db[collection_name]

def get_users_collection() -> motor.motor_asyncio.AsyncIOMotorCollection:
    return get_collection(USERS_COLLECTION)

def get_kudos_collection() -> motor.motor_asyncio.AsyncIOMotorCollection:
    return get_collection(KUDOS_COLLECTION)

async def check_database_health() -> Dict[str, Any]:
    """
    Performs a health check on the database connection.

    Returns:
        Dict containing status, connection details, collection info, errors, timestamp.
    """
    health_info = {
        "status": "OK",
        "connected": False,
        "collections": [],
        "expected_collections": EXPECTED_COLLECTIONS,
        "missing_collections": [],
        "error": None,
        "timestamp": datetime.now(timezone.utc).isoformat()
    }

    db_instance = get_database()
    if db_instance is None:
        health_info.update({
            "status": "ERROR",
            "error": "Database instance not initialized (connection likely failed on startup)"
        })
        return health_info

    try:
        await db_instance.client.admin.command('ping')
        health_info["connected"] = True

        collections = await db_instance.list_collection_names()
        health_info["collections"] = collections

        missing = [col for col in EXPECTED_COLLECTIONS if col not in collections]
        if missing:
            health_info["missing_collections"] = missing
            health_info["status"] = "WARNING"
            logger.warning(f"Database health check WARNING: Missing expected collections: {missing}")

        return health_info

    except Exception as e:
        logger.error(f"Database health check failed: {e}", exc_info=True)
        health_info.update({
            "status": "ERROR",
            "connected": False,
            "error": str(e)
        })
        return health_info
