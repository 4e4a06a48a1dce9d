# app/core/config.py
import os
import logging
from dotenv import load_dotenv
from pathlib import Path
from typing import Optional, List
from pydantic_settings import BaseSettings

# --- Path Setup & .env Loading ---
# .env lives in the backend project root, two levels up from core
BASE_DIR = Path(__file__).resolve().parent.parent.parent
ENV_PATH = BASE_DIR / '.env'

if ENV_PATH.is_file():
    load_dotenv(dotenv_path=ENV_PATH)
else:
    # Logger is not configured yet at this point
    print(f"Warning: .env file not found at {ENV_PATH}. Relying on system environment variables.")

PRODUCTION_ENVIRONMENT = "Production"
TESTING_ENVIRONMENT = "Testing"

# --- Pydantic Settings Class ---
class Settings(BaseSettings):
    PROJECT_NAME: str = "Kudos API"
    DEBUG: bool = False
    VERSION: str = "0.1.0"
    ENVIRONMENT: str = "Development"
    API_PREFIX: str = "/api"

    # Database Settings
    MONGODB_URL: Optional[str] = None
    DB_NAME: str = "kudos"
    MONGODB_TLS: bool = False

    # Kudos behaviour
    KUDOS_DRY_RUN: bool = False

    # Identity provider settings
    OIDC_AUTHORITY: Optional[str] = None
    OIDC_AUDIENCE: Optional[str] = None
    OIDC_JWKS_URL: Optional[str] = None

    # Comma-separated list of browser origins allowed to call the API
    CORS_ORIGINS: str = "http://localhost:5173"

    @property
    def cors_origins(self) -> List[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == PRODUCTION_ENVIRONMENT.lower()

    @property
    def is_testing(self) -> bool:
        return self.ENVIRONMENT.lower() == TESTING_ENVIRONMENT.lower()

settings = Settings()

# --- Logging Setup ---
LOG_LEVEL_NAME: str = os.getenv("LOG_LEVEL", "WARNING").upper()
if settings.DEBUG:
    LOG_LEVEL_NAME = "DEBUG"

ACTUAL_LOG_LEVEL = getattr(logging, LOG_LEVEL_NAME, logging.WARNING)

logging.basicConfig(
    level=ACTUAL_LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logging.getLogger('uvicorn').setLevel(logging.WARNING)
logging.getLogger('uvicorn.access').setLevel(logging.WARNING)
logging.getLogger('fastapi').setLevel(logging.INFO if settings.DEBUG else logging.WARNING)
logging.getLogger('motor').setLevel(logging.WARNING)
logging.getLogger('pymongo').setLevel(logging.WARNING)
logging.getLogger('httpx').setLevel(logging.WARNING)

logger = logging.getLogger(__name__)

# --- Validate critical settings after loading ---
if not settings.MONGODB_URL:
    logger.critical("CRITICAL: MONGODB_URL environment variable is not set and no default provided.")

if not settings.is_testing:
    if not settings.OIDC_AUTHORITY:
        logger.warning("OIDC_AUTHORITY environment variable is not set. Authentication will likely fail.")
    if not settings.OIDC_AUDIENCE:
        logger.warning("OIDC_AUDIENCE environment variable is not set. Token validation might fail.")

if settings.KUDOS_DRY_RUN:
    logger.warning("KUDOS_DRY_RUN is enabled. Write endpoints will not persist any changes.")

if settings.DEBUG:
    logger.debug(f"PROJECT_NAME: {settings.PROJECT_NAME}")
    logger.debug(f"ENVIRONMENT: {settings.ENVIRONMENT}")
    logger.debug(f"API_PREFIX: {settings.API_PREFIX}")
    logger.debug(f"DB_NAME: {settings.DB_NAME}")
    logger.debug(f"OIDC_AUTHORITY: {settings.OIDC_AUTHORITY}")
    logger.debug(f"OIDC_AUDIENCE: {settings.OIDC_AUDIENCE}")
    logger.debug(f"KUDOS_DRY_RUN: {settings.KUDOS_DRY_RUN}")
    logger.debug(f"MONGODB_URL Set: {'Yes' if settings.MONGODB_URL else 'No - CRITICAL'}")

# Module-level aliases for modules that import constants directly
PROJECT_NAME = settings.PROJECT_NAME
DEBUG = settings.DEBUG
VERSION = settings.VERSION
API_PREFIX = settings.API_PREFIX
MONGODB_URL = settings.MONGODB_URL
DB_NAME = settings.DB_NAME
