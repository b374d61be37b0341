"""Client, thread and turn options plus YAML config loading"""
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field

from core.cancellation import CancelSignal

logger = logging.getLogger(__name__)

SandboxMode = Literal["read-only", "workspace-write", "danger-full-access"]
ModelReasoningEffort = Literal["minimal", "low", "medium", "high"]
ApprovalMode = Literal["never", "on-request", "on-failure", "untrusted"]


class CodexOptions(BaseModel):
    """Client-level options"""
    codex_path_override: Optional[str] = None
    base_url: Optional[str] = None
    api_key: Optional[str] = None
    # Replaces os.environ for the child process when set
    env: Optional[Dict[str, str]] = None


class ThreadOptions(BaseModel):
    """Options applied to every turn of a thread"""
    model: Optional[str] = None
    sandbox_mode: Optional[SandboxMode] = None
    working_directory: Optional[str] = None
    skip_git_repo_check: bool = False
    model_reasoning_effort: Optional[ModelReasoningEffort] = None
    network_access_enabled: Optional[bool] = None
    web_search_enabled: Optional[bool] = None
    approval_policy: Optional[ApprovalMode] = None
    additional_directories: List[str] = Field(default_factory=list)


class TurnOptions(BaseModel):
    """Per-turn options"""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    output_schema: Optional[Any] = None
    signal: Optional[CancelSignal] = None
    # Emit item.started ahead of each item.completed on the HTTP path
    include_progress: bool = False


class ExecArgs(BaseModel):
    """Everything one execution needs. Immutable once built."""
    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    input: str
    base_url: Optional[str] = None
    api_key: Optional[str] = None
    thread_id: Optional[str] = None
    images: List[str] = Field(default_factory=list)
    model: Optional[str] = None
    sandbox_mode: Optional[SandboxMode] = None
    working_directory: Optional[str] = None
    additional_directories: List[str] = Field(default_factory=list)
    skip_git_repo_check: bool = False
    output_schema_file: Optional[str] = None
    model_reasoning_effort: Optional[ModelReasoningEffort] = None
    network_access_enabled: Optional[bool] = None
    web_search_enabled: Optional[bool] = None
    approval_policy: Optional[ApprovalMode] = None
    include_progress: bool = False
    signal: Optional[CancelSignal] = None


class HistoryConfig(BaseModel):
    """History store configuration"""
    max_messages: Optional[int] = Field(default=None, gt=0)
    sqlite_path: Optional[str] = None


class BridgeConfig(BaseModel):
    """Complete configuration file"""
    codex: CodexOptions = Field(default_factory=CodexOptions)
    thread: ThreadOptions = Field(default_factory=ThreadOptions)
    history: HistoryConfig = Field(default_factory=HistoryConfig)
    log_level: str = "INFO"


def load_config(path: Optional[Path] = None) -> BridgeConfig:
    """Load configuration from YAML, filling endpoint settings from the environment"""
    data: Dict[str, Any] = {}
    if path is not None:
        logger.info(f"Loading configuration from {path}")
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Config file {path} must contain a mapping")

    config = BridgeConfig(**data)

    if not config.codex.base_url and os.environ.get("CODEX_BASE_URL"):
        config.codex.base_url = os.environ["CODEX_BASE_URL"]
    if not config.codex.api_key and os.environ.get("CODEX_API_KEY"):
        config.codex.api_key = os.environ["CODEX_API_KEY"]

    transport = "http" if config.codex.base_url else "process"
    logger.info(f"Configuration loaded (transport={transport})")
    return config
