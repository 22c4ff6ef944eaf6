"""SQLAlchemy ORM models for TFT Arena.

All models are exported from this module for convenient imports:
    from app.models import Account, Identity

Models are organized by domain:
- account.py: Account (Tier 0 - principal), AccountRole
- identity.py: Identity (Tier 1 - provider linkage)
"""

from app.models.account import Account, AccountRole
from app.models.base import Base, TimestampMixin
from app.models.identity import Identity

__all__ = [
    # Base classes
    "Base",
    "TimestampMixin",
    # Tier 0
    "Account",
    "AccountRole",
    # Tier 1 - Auth
    "Identity",
]
