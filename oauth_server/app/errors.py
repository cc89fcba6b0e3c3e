"""
errors.py — AppError base class and error code registry.

Every error returned by the token server uses a code defined here.
Do not raise strings or generic exceptions from service or route code.

Rules:
  - Error codes are a versioned contract. They do not change once published.
  - Error messages are the "Error" field of the response body. The
    authentication failure message is deliberately identical for every
    cause (unknown principal, wrong secret) so that usernames and client IDs
    cannot be enumerated.
"""

from __future__ import annotations


class AppError(Exception):

    def __init__(
            self,
            code: str,
            message: str,
            http_status: int,
            headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.code        = code
        self.message     = message
        self.http_status = http_status
        self.headers     = headers or {}  # extra response headers, e.g. WWW-Authenticate

    def to_dict(self) -> dict:
        return {
            "Error": self.message,
            "code":  self.code,
        }

    def __repr__(self) -> str:
        return (
            f"AppError(code={self.code!r}, "
            f"http_status={self.http_status}, "
            f"message={self.message!r})"
        )


# ── Error Code Registry ────────────────────────────────────────────────────
#
# Organised by category. HTTP status is indicated in the comment.
# IMPORTANT: these are the string values sent in the API response.
# ──────────────────────────────────────────────────────────────────────────

class ErrorCode:

    # ── Request Errors (400) ───────────────────────────────────────────────
    INVALID_GRANT_TYPE         = "INVALID_GRANT_TYPE"
    REFRESH_TOKEN_NOT_FOUND    = "REFRESH_TOKEN_NOT_FOUND"
    REFRESH_TOKEN_EXPIRED      = "REFRESH_TOKEN_EXPIRED"
    ACCESS_TOKEN_NOT_FOUND     = "ACCESS_TOKEN_NOT_FOUND"

    # ── Auth Errors (401) ──────────────────────────────────────────────────
    # UNAUTHORIZED is the grant-level failure (bad user / client credentials).
    # The TOKEN_* codes belong to bearer-token checks on protected endpoints.
    UNAUTHORIZED               = "UNAUTHORIZED"
    TOKEN_MISSING              = "TOKEN_MISSING"
    TOKEN_INVALID              = "TOKEN_INVALID"
    TOKEN_EXPIRED              = "TOKEN_EXPIRED"

    # ── Conflict Errors (409) — provisioning commands only ────────────────
    DUPLICATE_USERNAME         = "DUPLICATE_USERNAME"
    DUPLICATE_CLIENT_ID        = "DUPLICATE_CLIENT_ID"
    DUPLICATE_SCOPE            = "DUPLICATE_SCOPE"

    # ── System Errors (500) ────────────────────────────────────────────────
    # Persistence failures always roll back the open transaction first.
    DATABASE_UNAVAILABLE       = "DATABASE_UNAVAILABLE"
    REFRESH_TOKEN_SAVE_FAILED  = "REFRESH_TOKEN_SAVE_FAILED"
    ACCESS_TOKEN_SAVE_FAILED   = "ACCESS_TOKEN_SAVE_FAILED"
    INTERNAL_ERROR             = "INTERNAL_ERROR"


def unauthorized() -> AppError:
    """The single 401 returned by every failed grant authentication."""
    return AppError(
        ErrorCode.UNAUTHORIZED,
        "Unauthorized",
        401,
        headers={"WWW-Authenticate": "Basic realm=Bearer"},
    )
