from app.core.config import settings
from app.services.kudos_service import KudosService


async def get_kudos_service() -> KudosService:
    """Kudos service bound to the process-wide dry-run setting."""
    return KudosService(dry_run=settings.KUDOS_DRY_RUN)
