from app.routers import admin, verification

__all__ = [
    "admin",
    "verification",
]
