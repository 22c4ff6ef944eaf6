"""Account model - the durable principal.

One row per person. An account is created together with its first
identity and must keep at least one identity for as long as it exists.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, String, Text, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from app.models.identity import Identity

_DEFAULT_UUID = text("gen_random_uuid()")


class AccountRole(str, Enum):
    """Closed set of account roles."""

    PLAYER = "player"
    ORGANIZER = "organizer"
    ADMIN = "admin"


class Account(Base, TimestampMixin):
    """Tournament platform account.

    Attributes:
        id: UUID primary key.
        email: Unique email address (stored lowercase).
        username: Display name (populated from the first OAuth profile).
        avatar_url: Profile picture URL from the OAuth provider.
        role: One of AccountRole values. Defaults to "player".
        riot_id: Riot ID (e.g. "PlayerName#EUW"), opaque to this service.
        riot_puuid: Riot PUUID, opaque to this service.
        last_login_at: Last successful authentication.
        created_at: Account creation timestamp (from TimestampMixin).
        updated_at: Last modification timestamp (from TimestampMixin).
    """

    __tablename__ = "accounts"
    __table_args__ = (
        CheckConstraint(
            "role IN ('player', 'organizer', 'admin')",
            name="ck_accounts_role_valid",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=_DEFAULT_UUID,
    )
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
    )
    username: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    avatar_url: Mapped[str | None] = mapped_column(
        Text(),
        nullable=True,
    )
    role: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=AccountRole.PLAYER.value,
        server_default=text("'player'"),
    )
    riot_id: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
    )
    riot_puuid: Mapped[str | None] = mapped_column(
        String(128),
        nullable=True,
    )
    last_login_at: Mapped[datetime | None] = mapped_column(
        nullable=True,
    )

    # Relationships
    identities: Mapped[list["Identity"]] = relationship(
        "Identity",
        back_populates="account",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Identity.created_at",
    )
