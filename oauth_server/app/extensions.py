"""
extensions.py — Flask extension singletons.

Creates the SQLAlchemy object at module level so models, services and routes
can import it without circular dependencies.

Pattern:
    1. Create the extension object here (no app attached yet).
    2. Call init_app(app) inside the app factory in app/__init__.py.
    3. Import `db` from here wherever needed.

    from oauth_server.app.extensions import db

Do not pass the app object to SQLAlchemy() at import time — that would
prevent running tests with a separate test app instance.

`db.session` is the request-scoped store handle. Routes hand it to service
functions as a plain `Session` argument; services never import `db`.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
