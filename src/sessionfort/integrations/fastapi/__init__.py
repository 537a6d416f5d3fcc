"""FastAPI integration for SessionFort."""

from sessionfort.integrations.fastapi.deps import create_current_user_dep, create_require_role_dep
from sessionfort.integrations.fastapi.router import create_auth_router

__all__ = [
    "create_auth_router",
    "create_current_user_dep",
    "create_require_role_dep",
]
