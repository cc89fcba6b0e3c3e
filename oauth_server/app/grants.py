"""
grants.py — Grant type and token-owner value types.

GrantType is resolved once at the HTTP boundary; everything downstream
dispatches on the enum member, never on the raw form string.

Identity replaces "ID <= 0 means absent" with explicit optionals: a token
belongs to a client or to a user, never both and never neither.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from oauth_server.app.errors import AppError, ErrorCode


class GrantType(str, Enum):
    CLIENT_CREDENTIALS = "client_credentials"
    PASSWORD           = "password"
    REFRESH_TOKEN      = "refresh_token"

    @classmethod
    def parse(cls, value: str | None) -> "GrantType":
        """
        Returns the member for `value`.

        Raises:
          AppError(INVALID_GRANT_TYPE, 400) — missing, empty or unsupported value.
        """
        try:
            return cls(value)
        except ValueError:
            raise AppError(
                ErrorCode.INVALID_GRANT_TYPE,
                "Invalid grant type",
                400,
            )


@dataclass(frozen=True)
class Identity:
    """The owner a new token pair is issued to."""

    client_id: int | None = None
    user_id: int | None = None

    def __post_init__(self) -> None:
        if (self.client_id is None) == (self.user_id is None):
            raise ValueError(
                "Identity requires exactly one of client_id or user_id, "
                f"got client_id={self.client_id!r}, user_id={self.user_id!r}."
            )

    @classmethod
    def for_client(cls, client_id: int) -> "Identity":
        return cls(client_id=client_id)

    @classmethod
    def for_user(cls, user_id: int) -> "Identity":
        return cls(user_id=user_id)
