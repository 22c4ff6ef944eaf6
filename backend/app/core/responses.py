"""Response envelope models.

Every endpoint answers with {"success": true, "data": ...} or
{"success": true, "message": ...}; failures use
{"success": false, "message": ..., "code": ...}.
"""

from typing import Generic, Literal, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class DataResponse(BaseModel, Generic[T]):
    """Standard success envelope carrying a payload.

    Usage:
        @router.get("/users/me")
        async def get_me(auth: CurrentAuth) -> DataResponse[AccountProfile]:
            profile = await service.get_profile(db, auth.account_id)
            return DataResponse(data=profile)
    """

    success: Literal[True] = True
    data: T


class MessageResponse(BaseModel):
    """Success envelope carrying only a human-readable message."""

    success: Literal[True] = True
    message: str


class ErrorResponse(BaseModel):
    """Standard error envelope.

    Attributes:
        message: Human-readable error message.
        code: Machine-readable error code (e.g., "NOT_FOUND").
        details: Optional list of field-level errors (for validation).
        detail: Exception text, only populated in development.

    Usage in exception handlers:
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(code=exc.code, message=exc.message)
            .model_dump(exclude_none=True),
        )
    """

    success: Literal[False] = False
    message: str
    code: str
    details: list[dict] | None = None
    detail: str | None = None
