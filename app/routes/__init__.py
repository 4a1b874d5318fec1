from app.routes import admin, audit, auth, incidents, notifications, users  # noqa: F401
