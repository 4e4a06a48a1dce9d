"""Seed the configured MongoDB database with baseline users (and sample kudos outside production)."""
import asyncio
import os
import sys

# --- Path Logic ---
# Project root is one level above 'scripts'; the app package lives in backend/
script_path = os.path.abspath(__file__)
project_root = os.path.dirname(os.path.dirname(script_path))
backend_root = os.path.join(project_root, "backend")

if backend_root not in sys.path:
    sys.path.insert(0, backend_root)

from app.core.config import settings
from app.db.database import connect_to_mongo, close_mongo_connection, get_database
from app.db.init_db import init_db_indexes
from app.db.seed import seed_database


async def main() -> int:
    print(f"Seeding database '{settings.DB_NAME}' (environment={settings.ENVIRONMENT})...")
    if not await connect_to_mongo():
        print("Could not connect to MongoDB. Check MONGODB_URL.")
        return 1
    try:
        db = get_database()
        await init_db_indexes(db)
        await seed_database(db, include_sample_kudos=not settings.is_production)
        user_count = await db["users"].count_documents({})
        kudos_count = await db["kudos"].count_documents({})
        print(f"Done. users={user_count} kudos={kudos_count}")
        return 0
    finally:
        await close_mongo_connection()


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
