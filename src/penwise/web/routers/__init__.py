from penwise.web.routers.auth import router as auth_router
from penwise.web.routers.journal import router as journal_router
from penwise.web.routers.users import router as users_router

__all__ = [
    "auth_router",
    "journal_router",
    "users_router",
]
