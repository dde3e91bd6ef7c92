"""
API State Management
====================
Process-wide singletons shared by the route modules. The server lifespan
fills in the scan manager and agent runner; tests swap ``config`` before
starting the app.
"""

import time
from typing import Optional

import httpx
from slowapi import Limiter
from slowapi.util import get_remote_address

from devconsole.agent_runner import AgentRunner
from devconsole.api.websocket import ConnectionManager
from devconsole.config import ConsoleConfig
from devconsole.scan_manager import ScanManager

config: ConsoleConfig = ConsoleConfig.from_env()

# Global connection manager
manager = ConnectionManager()

# Initialized at startup
scan_manager: Optional[ScanManager] = None
agent_runner: Optional[AgentRunner] = None

# Outbound HTTP transport for Authentik and agent api actions (None = network)
http_transport: Optional[httpx.AsyncBaseTransport] = None

limiter = Limiter(key_func=get_remote_address, enabled=config.rate_limit_enabled)

start_time = time.time()


def get_scan_manager() -> ScanManager:
    if scan_manager is None:
        raise RuntimeError("Scan manager not initialized - server startup may have failed")
    return scan_manager


def get_agent_runner() -> AgentRunner:
    if agent_runner is None:
        raise RuntimeError("Agent runner not initialized - server startup may have failed")
    return agent_runner
