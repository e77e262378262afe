"""Organization model (tenant boundary)."""

from sqlmodel import Field, SQLModel

from .base import CreatedAtMixin, UUIDMixin


class Organization(UUIDMixin, CreatedAtMixin, SQLModel, table=True):
    __tablename__ = "organizations"

    name: str = Field(nullable=False, index=True)
