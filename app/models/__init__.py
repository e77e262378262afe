# SQLModel definitions — imported here to ensure metadata is populated for Alembic.
from .base import UUIDMixin, CreatedAtMixin, TimestampMixin  # noqa: F401
from .organization import Organization  # noqa: F401
from .user_profile import UserProfile  # noqa: F401
from .organization_member import OrganizationMember  # noqa: F401
from .conversation import Conversation  # noqa: F401
from .audit_log import AuditLog  # noqa: F401
from .password_reset_token import PasswordResetToken  # noqa: F401
from .data_source import DataSourceConnection  # noqa: F401
