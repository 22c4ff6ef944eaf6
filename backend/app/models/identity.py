"""Identity model - OAuth provider linkages.

Multiple rows per account (one per linked provider login).
(provider, provider_subject_id) is globally unique: one external
identity links to at most one account.
"""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    String,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base

if TYPE_CHECKING:
    from app.models.account import Account

_DEFAULT_UUID = text("gen_random_uuid()")


class Identity(Base):
    """External provider identity linked to an account.

    Attributes:
        id: UUID primary key.
        account_id: FK to accounts table.
        provider: Provider name ("google", "discord", "twitch").
        provider_subject_id: Provider's unique user ID.
        email: Email reported by the provider at link time.
        created_at: Record creation timestamp.
    """

    __tablename__ = "identities"
    __table_args__ = (
        UniqueConstraint(
            "provider",
            "provider_subject_id",
            name="uq_identities_provider_subject",
        ),
        CheckConstraint(
            "provider IN ('google', 'discord', 'twitch')",
            name="ck_identities_provider_valid",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=_DEFAULT_UUID,
    )
    account_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    provider: Mapped[str] = mapped_column(String(20), nullable=False)
    provider_subject_id: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    # Relationships
    account: Mapped["Account"] = relationship("Account", back_populates="identities")
