from .profiles import router as profiles_routes
from .books import router as books_routes
from .requests import router as requests_routes
from .notifications import router as notifications_routes
from .activity import router as activity_routes
from .realtime import router as realtime_routes
from .geocoding import router as geocoding_routes
from .admin import router as admin_routes

__all__ = [
    "profiles_routes",
    "books_routes",
    "requests_routes",
    "notifications_routes",
    "activity_routes",
    "realtime_routes",
    "geocoding_routes",
    "admin_routes",
]
