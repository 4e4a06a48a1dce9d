# app/models/kudos.py
from pydantic import BaseModel, Field, ConfigDict, StrictBool
from pydantic.alias_generators import to_camel
from typing import Optional, List
from datetime import datetime, timezone

MAX_MESSAGE_LENGTH = 240
DRY_RUN_KUDOS_ID = "dry-run"

# Shared config: documents and API payloads both use camelCase field names
class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

# Shared base properties
class KudosBase(CamelModel):
    # Recipient and sender are point-in-time snapshots taken at creation
    to_user_id: str
    to_user_name: str = ""
    to_user_team: str = ""
    from_user_id: str
    from_user_name: str = ""
    from_user_team: str = ""
    message: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    is_visible: bool = True

    # Moderation metadata, unset until the first moderation action
    moderated_by: Optional[str] = Field(default=None, description="External id of the last moderator")
    moderated_at: Optional[datetime] = None
    moderation_reason: Optional[str] = None

# Properties stored on insert
class KudosCreate(KudosBase):
    pass

# Final model representing a Kudos read from DB (API Response)
class Kudos(KudosBase):
    id: str

# --- Request bodies ---

# Both fields default to empty so that missing values are reported as 400 by the service
class KudosCreateRequest(CamelModel):
    to_user_id: Optional[str] = ""
    message: Optional[str] = ""

class VisibilityUpdateRequest(CamelModel):
    # "false", "no" or 0 are rejected rather than coerced
    is_visible: StrictBool
    reason: Optional[str] = ""

# --- Response bodies ---

class KudosPage(CamelModel):
    page: int
    page_size: int
    total: int
    dry_run: bool
    items: List[Kudos]

class ModerationResult(CamelModel):
    id: str
    is_visible: bool
    moderated_by: str
    moderated_at: datetime
    moderation_reason: str
    dry_run: bool

class DeleteResult(CamelModel):
    id: str
    deleted: bool = True
    dry_run: bool
