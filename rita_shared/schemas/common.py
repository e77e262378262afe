from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class MemberRole(str, Enum):
    OWNER = "owner"
    ADMIN = "admin"
    USER = "user"


class MemberAction(str, Enum):
    UPDATE_ROLE = "update_role"
    UPDATE_STATUS = "update_status"
    REMOVE_MEMBER = "remove_member"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class CamelModel(BaseModel):
    """Serializes to camelCase on the wire, accepts either spelling on input."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class ErrorResponse(BaseModel):
    """Flat error body. Some codes carry extra keys such as ``message`` or ``details``."""
    model_config = ConfigDict(extra="allow")

    error: str
    code: str
    message: Optional[str] = None
