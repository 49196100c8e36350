import uuid

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from timekeeper.models.base import Base, TimestampMixin, generate_uuid


class User(TimestampMixin, Base):
    """Opaque identity that owns tokens, projects, sessions and settings."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=generate_uuid)
    email: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True, index=True)
