"""
API Request Types
=================
Pydantic models for request bodies.

Fields the routes validate themselves (to return their own 400 messages)
are Optional here so a missing value reaches the handler instead of
failing as a 422.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# PROJECTS & FILES
# =============================================================================

class CreateProjectRequest(BaseModel):
    name: Optional[str] = None
    template: Optional[str] = None
    description: Optional[str] = None


class ProjectSettingsRequest(BaseModel):
    skip_permissions: Optional[bool] = None


# =============================================================================
# GIT
# =============================================================================

class GitCommitRequest(BaseModel):
    message: Optional[str] = None
    files: Optional[List[str]] = None
    add_all: bool = False


class GitStashRequest(BaseModel):
    message: Optional[str] = None


class GitBranchRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = None
    start_point: Optional[str] = Field(default=None, alias="from")


class GitCheckoutRequest(BaseModel):
    branch: Optional[Any] = None


# =============================================================================
# BACKUPS
# =============================================================================

class CreateBackupRequest(BaseModel):
    strategy: str = "full"
    name: Optional[str] = None


# =============================================================================
# LIFECYCLE
# =============================================================================

class ToolInstallRequest(BaseModel):
    tool: Optional[str] = None


class ScanRequest(BaseModel):
    agent: Optional[str] = None
    command: Optional[str] = ""
    project: Optional[str] = None


class SanitizeRequest(BaseModel):
    project: Optional[str] = None
    fix: bool = False
    verbose: bool = False


# =============================================================================
# AGENTS
# =============================================================================

class AgentRequest(BaseModel):
    """Create and update body; on update only the fields sent are applied."""
    name: Optional[str] = None
    description: Optional[str] = None
    trigger_type: Optional[str] = None
    trigger_config: Optional[Dict[str, Any]] = None
    actions: Optional[List[Any]] = None
    enabled: Optional[bool] = None
    project_id: Optional[str] = None


class GitEventRequest(BaseModel):
    event: Optional[str] = None
    project_path: Optional[str] = None


# =============================================================================
# ALERTS
# =============================================================================

class AlertRuleRequest(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    type: Optional[str] = None
    condition: Optional[str] = None
    threshold: Optional[Any] = None
    duration: Optional[int] = None
    target: Optional[str] = None
    enabled: Optional[bool] = None
    notify_sound: Optional[bool] = None
    notify_desktop: Optional[bool] = None
    cooldown_mins: Optional[int] = None


# =============================================================================
# PLANS
# =============================================================================

class PlanStepInput(BaseModel):
    title: str = ""
    description: Optional[str] = None
    command: Optional[str] = None
    depends_on: Optional[List[str]] = None
    tags: Optional[List[str]] = None
    estimated_mins: Optional[int] = None


class CreatePlanRequest(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    goal: Optional[str] = None
    project_id: Optional[str] = None
    session_id: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    steps: Optional[List[PlanStepInput]] = None


class UpdatePlanRequest(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    goal: Optional[str] = None
    status: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class StepRequest(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    command: Optional[str] = None
    status: Optional[str] = None
    depends_on: Optional[List[str]] = None
    tags: Optional[List[str]] = None
    notes: Optional[str] = None
    estimated_mins: Optional[int] = None
    output: Optional[str] = None
    error: Optional[str] = None
    insert_after: Optional[str] = None


class ReorderStepsRequest(BaseModel):
    step_ids: List[str]


# =============================================================================
# THEMES
# =============================================================================

class CreateThemeRequest(BaseModel):
    name: Optional[str] = None
    display_name: Optional[str] = None
    colors: Optional[Dict[str, str]] = None


class UpdateThemeRequest(BaseModel):
    display_name: Optional[str] = None
    colors: Optional[Dict[str, str]] = None


class DuplicateThemeRequest(BaseModel):
    name: Optional[str] = None
    display_name: Optional[str] = None


# =============================================================================
# ADMIN USERS
# =============================================================================

class AuthentikSettingsRequest(BaseModel):
    api_url: Optional[str] = None
    api_token: Optional[str] = None


class AuthentikUserCreate(BaseModel):
    username: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    is_active: bool = True
    groups: List[str] = []


class AuthentikUserUpdate(BaseModel):
    username: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    is_active: Optional[bool] = None
    groups: Optional[List[str]] = None


class PasswordRequest(BaseModel):
    password: Optional[str] = None


class ToggleActiveRequest(BaseModel):
    is_active: bool


class ServerUserCreate(BaseModel):
    username: Optional[str] = None
    full_name: Optional[str] = None
    shell: Optional[str] = "/bin/bash"
    create_home: bool = True
    groups: List[str] = []


class ServerUserUpdate(BaseModel):
    full_name: Optional[str] = None
    shell: Optional[str] = None
    groups: Optional[List[str]] = None
    locked: Optional[bool] = None


class FirewallRuleRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    action: str = "allow"
    direction: str = "in"
    port: Optional[str] = None
    protocol: Optional[str] = None
    source: Optional[str] = Field(default=None, alias="from")
    to: Optional[str] = None
    comment: Optional[str] = None


class FirewallDefaultRequest(BaseModel):
    direction: Optional[str] = None
    policy: Optional[str] = None


class FirewallLoggingRequest(BaseModel):
    level: Optional[str] = None
