"""User profile model. The credential itself lives in the identity provider."""

from typing import Optional
import uuid

from sqlmodel import Field, SQLModel

from .base import CreatedAtMixin


class UserProfile(CreatedAtMixin, SQLModel, table=True):
    __tablename__ = "user_profiles"

    user_id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    email: str = Field(nullable=False, unique=True, index=True)
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    active_organization_id: Optional[uuid.UUID] = Field(
        default=None, foreign_key="organizations.id"
    )
