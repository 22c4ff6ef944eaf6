"""Session service - token issuance and account session operations.

Turns a resolved account into a bearer credential pair, rotates pairs
from refresh tokens, and handles logout and account deletion. Sessions
are stateless JWTs: logout is an audit entry only and nothing is revoked
server-side.
"""

import logging
import uuid
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import InvalidCredentialError, NotFoundError
from app.core.tokens import (
    CredentialError,
    TokenClaims,
    TokenClass,
    TokenPair,
    TokenService,
)
from app.models.account import Account
from app.repositories.account_repository import AccountRepository
from app.schemas.account import AccountSnapshot

logger = logging.getLogger(__name__)

_INVALID_REFRESH_MESSAGE = "Invalid refresh token"


@dataclass(frozen=True)
class AuthResult:
    """Outcome of a successful authentication.

    Attributes:
        account: Snapshot of the authenticated account.
        tokens: Freshly issued credential pair.
    """

    account: AccountSnapshot
    tokens: TokenPair


def claims_for(account: Account) -> TokenClaims:
    """Build the claim set for an account's current email and role."""
    return TokenClaims(
        account_id=str(account.id),
        email=account.email,
        role=account.role,
    )


class SessionService:
    """Issues and rotates credentials for accounts.

    Args:
        tokens: Token service used for signing and verification.
    """

    def __init__(self, tokens: TokenService) -> None:
        self._tokens = tokens

    async def authenticate(
        self, db: AsyncSession, account_id: uuid.UUID
    ) -> AuthResult:
        """Issue a token pair for an account.

        Raises:
            NotFoundError: If the account no longer exists.
        """
        account = await AccountRepository.get_by_id(db, account_id)
        if account is None:
            raise NotFoundError("Account")

        tokens = self._tokens.issue_pair(claims_for(account))
        logger.info(
            "Auth tokens issued",
            extra={"account_id": str(account.id)},
        )
        return AuthResult(
            account=AccountSnapshot.model_validate(account),
            tokens=tokens,
        )

    async def get_current_account(
        self, db: AsyncSession, account_id: uuid.UUID
    ) -> AccountSnapshot:
        """Return the snapshot of an account.

        Raises:
            NotFoundError: If the account no longer exists.
        """
        account = await AccountRepository.get_by_id(db, account_id)
        if account is None:
            raise NotFoundError("Account")
        return AccountSnapshot.model_validate(account)

    async def refresh(self, db: AsyncSession, refresh_token: str) -> TokenPair:
        """Rotate a refresh token into a new pair.

        The new pair carries the account's current email and role, so a
        role change takes effect on the next refresh.

        Args:
            db: Async database session.
            refresh_token: Encoded refresh token presented by the client.

        Returns:
            New token pair.

        Raises:
            InvalidCredentialError: If the token fails verification (expired
                and malformed are not distinguished) or the account is gone.
        """
        try:
            claims = self._tokens.verify(refresh_token, TokenClass.REFRESH)
        except CredentialError as exc:
            logger.info(
                "Refresh token rejected",
                extra={"reason": type(exc).__name__},
            )
            raise InvalidCredentialError(_INVALID_REFRESH_MESSAGE) from exc

        try:
            account_id = uuid.UUID(claims.account_id)
        except ValueError as exc:
            raise InvalidCredentialError(_INVALID_REFRESH_MESSAGE) from exc

        account = await AccountRepository.get_by_id(db, account_id)
        if account is None:
            logger.info(
                "Refresh token for missing account",
                extra={"account_id": claims.account_id},
            )
            raise InvalidCredentialError(_INVALID_REFRESH_MESSAGE)

        tokens = self._tokens.issue_pair(claims_for(account))
        logger.info(
            "Access token refreshed",
            extra={"account_id": str(account.id)},
        )
        return tokens

    def logout(self, account_id: uuid.UUID) -> None:
        """Record a logout. Clients discard their tokens."""
        logger.info("Account logged out", extra={"account_id": str(account_id)})

    async def delete_account(self, db: AsyncSession, account_id: uuid.UUID) -> None:
        """Delete an account and, by cascade, all of its identities.

        Raises:
            NotFoundError: If the account does not exist.
        """
        deleted = await AccountRepository.delete(db, account_id)
        if not deleted:
            raise NotFoundError("Account")
        logger.info("Account deleted", extra={"account_id": str(account_id)})
