# app/models/user.py
from pydantic import BaseModel, Field, ConfigDict
from pydantic.alias_generators import to_camel

UNASSIGNED_TEAM = "Unassigned"

# Shared base properties
class UserBase(BaseModel):
    name: str = Field(default="", description="Display name")
    team: str = Field(default="", description="Team label")
    # Empty for seeded users until they first authenticate and post
    external_id: str = Field(default="", description="Identity provider subject identifier")

    # Field names are stored and served in camelCase
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

# Properties required on creation
class UserCreate(UserBase):
    pass

# Final model representing a User read from DB (API Response)
class User(UserBase):
    id: str = Field(..., description="Store-assigned identifier")
