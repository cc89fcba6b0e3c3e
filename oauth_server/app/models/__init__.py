"""
models/ — Table definitions for the token store.

Importing the package registers every model on `db.metadata` so that
relationship strings ("User", "Scope", ...) resolve regardless of which
model module a caller imports first.
"""

from oauth_server.app.models.access_token import AccessToken, access_token_scopes  # noqa: F401
from oauth_server.app.models.client import Client  # noqa: F401
from oauth_server.app.models.refresh_token import RefreshToken  # noqa: F401
from oauth_server.app.models.scope import Scope  # noqa: F401
from oauth_server.app.models.user import User  # noqa: F401
