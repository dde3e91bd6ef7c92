"""
Developer Console — API Server
==============================
Version 1.0 — October 2026

FastAPI server for the developer console dashboard.
"""

import logging
import os
from contextlib import asynccontextmanager

import psutil
from dotenv import load_dotenv

# Load environment variables before the config singleton is built
load_dotenv()

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

import devconsole.api.state as api_state
from devconsole.agent_runner import AgentRunner
from devconsole.api.routes import (
    agents_router, alerts_router, authentik_router, backups_router,
    files_router, firewall_router, git_router, health_router,
    lifecycle_router, metrics_router, plans_router, projects_router,
    server_users_router, settings_router, themes_router, ws_router,
)
from devconsole.persistence import configure, init_db
from devconsole.persistence.agents import mark_stale_executions
from devconsole.persistence.settings import get_user_settings
from devconsole.persistence.themes import seed_built_in_themes
from devconsole.scan_manager import ScanManager

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("server")


def _kill_children() -> None:
    """Terminate any scan or agent subprocesses still attached to us."""
    try:
        children = psutil.Process(os.getpid()).children(recursive=True)
    except psutil.Error as e:
        logger.error(f"Error listing child processes: {e}")
        return

    for child in children:
        try:
            logger.info(f"Terminating child process {child.pid}")
            child.terminate()
        except psutil.NoSuchProcess:
            pass

    _, alive = psutil.wait_procs(children, timeout=3)
    for proc in alive:
        try:
            logger.warning(f"Force killing process {proc.pid}")
            proc.kill()
        except psutil.NoSuchProcess:
            pass


# =============================================================================
# APP SETUP
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    config = api_state.config

    configure(config.db_path)
    await init_db()
    await seed_built_in_themes()
    stale = await mark_stale_executions()
    if stale:
        logger.warning(f"⚠️ Marked {stale} interrupted agent execution(s) as failed")

    api_state.scan_manager = ScanManager(config.projects_dir, settings_loader=get_user_settings)
    await api_state.scan_manager.load_settings()

    api_state.agent_runner = AgentRunner(
        broadcaster=api_state.manager.broadcast,
        max_concurrent=config.max_concurrent_agents,
        shell_timeout=config.agent_shell_timeout,
        http_transport=api_state.http_transport,
    )
    await api_state.agent_runner.initialize()

    logger.info(f"🚀 Developer console ready (projects: {config.projects_dir})")

    yield

    logger.info("Shutting down developer console")
    await api_state.agent_runner.shutdown()
    await api_state.scan_manager.shutdown()
    api_state.agent_runner = None
    api_state.scan_manager = None
    _kill_children()


app = FastAPI(title="Developer Console API", lifespan=lifespan)

# Rate limiting setup
app.state.limiter = api_state.limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=api_state.config.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health_router)
app.include_router(metrics_router)
app.include_router(projects_router)
app.include_router(files_router)
app.include_router(git_router)
app.include_router(backups_router)
app.include_router(lifecycle_router)
app.include_router(agents_router)
app.include_router(alerts_router)
app.include_router(plans_router)
app.include_router(themes_router)
app.include_router(settings_router)
app.include_router(authentik_router)
app.include_router(server_users_router)
app.include_router(firewall_router)
app.include_router(ws_router)


def main():
    import uvicorn

    host = api_state.config.host
    port = api_state.config.port

    logger.info(f"🚀 Starting server on {host}:{port}")
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    main()
