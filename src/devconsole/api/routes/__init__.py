"""
API Routes
==========
FastAPI route modules for the developer console.
"""

from .agents import router as agents_router
from .alerts import router as alerts_router
from .authentik import router as authentik_router
from .backups import router as backups_router
from .files import router as files_router
from .firewall import router as firewall_router
from .git import router as git_router
from .health import router as health_router
from .lifecycle import router as lifecycle_router
from .metrics import router as metrics_router
from .plans import router as plans_router
from .projects import router as projects_router
from .server_users import router as server_users_router
from .settings import router as settings_router
from .themes import router as themes_router
from .ws import router as ws_router

__all__ = [
    "agents_router",
    "alerts_router",
    "authentik_router",
    "backups_router",
    "files_router",
    "firewall_router",
    "git_router",
    "health_router",
    "lifecycle_router",
    "metrics_router",
    "plans_router",
    "projects_router",
    "server_users_router",
    "settings_router",
    "themes_router",
    "ws_router",
]
