"""
config/settings.py — Tandem Runtime Settings

Merges config.yaml (defaults/structure) with .env (secrets) and environment
overrides. Pydantic-powered — all fields are validated and typed.

  - AgentConfig bounds the driver loop (turn budget, compression trigger)
  - SchedulerConfig picks the approval mode and output throttle
  - TwoAgentConfig describes the planner/executor split and rejects
    capability overlap between the two actors
  - validate_all() performs full startup validation and raises ConfigError
    with a clear, human-readable message listing every problem found
  - load_settings() respects TANDEM_CONFIG as a fallback when no explicit
    config_path argument is given
"""

from __future__ import annotations

import os
import threading
from pathlib import Path
from typing import Any, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# ─────────────────────────────────────────────────────────────────────────────
# Errors
# ─────────────────────────────────────────────────────────────────────────────

class ConfigError(Exception):
    """Raised by validate_all() when one or more config problems are found."""


# ─────────────────────────────────────────────────────────────────────────────
# Constants
# ─────────────────────────────────────────────────────────────────────────────

DEFAULT_PLANNER_MODEL = "gpt-4o"
DEFAULT_EXECUTOR_MODEL = "gpt-4o-mini"

_VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
_VALID_APPROVAL_MODES = {"auto", "interactive"}
_TRUTHY = {"true", "1", "yes", "on"}

# Capabilities that must belong to exactly one actor
CONFLICTING_CAPABILITIES: tuple[str, ...] = (
    "tool_execution",
    "file_operations",
    "shell_commands",
    "user_interaction",
)


# ─────────────────────────────────────────────────────────────────────────────
# Sub-models
# ─────────────────────────────────────────────────────────────────────────────

class AgentConfig(BaseModel):
    name: str = "Tandem"
    max_session_turns: int = 100
    compression_threshold: float = 0.7
    context_token_limit: int = 1_048_576
    compression_keep_recent: int = 4
    continue_prompt: str = "Please continue."

    @field_validator("max_session_turns")
    @classmethod
    def _positive_turns(cls, v: int) -> int:
        if v < 1:
            raise ValueError("agent.max_session_turns must be >= 1")
        return v

    @field_validator("compression_threshold")
    @classmethod
    def _valid_threshold(cls, v: float) -> float:
        if not (0.0 < v <= 1.0):
            raise ValueError("agent.compression_threshold must be in (0.0, 1.0]")
        return v

    @field_validator("context_token_limit")
    @classmethod
    def _positive_limit(cls, v: int) -> int:
        if v < 1:
            raise ValueError("agent.context_token_limit must be >= 1")
        return v

    @field_validator("compression_keep_recent")
    @classmethod
    def _non_negative_keep(cls, v: int) -> int:
        if v < 0:
            raise ValueError("agent.compression_keep_recent must be >= 0")
        return v


class SchedulerConfig(BaseModel):
    approval_mode: str = "interactive"
    output_update_interval_seconds: float = 1.0

    @field_validator("approval_mode")
    @classmethod
    def _valid_mode(cls, v: str) -> str:
        v = v.lower()
        if v not in _VALID_APPROVAL_MODES:
            raise ValueError(
                f"scheduler.approval_mode must be one of "
                f"{sorted(_VALID_APPROVAL_MODES)}, got '{v}'"
            )
        return v

    @field_validator("output_update_interval_seconds")
    @classmethod
    def _non_negative_interval(cls, v: float) -> float:
        if v < 0:
            raise ValueError("scheduler.output_update_interval_seconds must be >= 0")
        return v


class LLMRetryConfig(BaseModel):
    """Exponential backoff config for transient backend errors."""
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0


class LLMConfig(BaseModel):
    provider: str = "openai"
    model: str = DEFAULT_PLANNER_MODEL
    temperature: float = 0.7
    max_tokens: int = 4096
    base_url: Optional[str] = None
    retry: LLMRetryConfig = Field(default_factory=LLMRetryConfig)

    @field_validator("provider")
    @classmethod
    def _known_provider(cls, v: str) -> str:
        if v != "openai":
            raise ValueError(f"llm.provider '{v}' is not supported. Supported: ['openai']")
        return v

    @field_validator("temperature")
    @classmethod
    def _valid_temperature(cls, v: float) -> float:
        if not (0.0 <= v <= 2.0):
            raise ValueError("llm.temperature must be between 0.0 and 2.0")
        return v


class ActorConfig(BaseModel):
    model: str
    capabilities: List[str] = Field(default_factory=list)


class CommunicationConfig(BaseModel):
    debugging: bool = False
    message_history: bool = True


class TwoAgentConfig(BaseModel):
    enabled: bool = False
    planner: ActorConfig = Field(default_factory=lambda: ActorConfig(
        model=DEFAULT_PLANNER_MODEL,
        capabilities=[
            "user_interaction",
            "planning",
            "strategy",
            "analysis",
            "communication",
            "conversation_management",
        ],
    ))
    executor: ActorConfig = Field(default_factory=lambda: ActorConfig(
        model=DEFAULT_EXECUTOR_MODEL,
        capabilities=[
            "file_operations",
            "shell_commands",
            "tool_execution",
            "code_editing",
            "search_operations",
            "web_operations",
        ],
    ))
    communication: CommunicationConfig = Field(default_factory=CommunicationConfig)

    def problems(self) -> list[str]:
        """Return every configuration problem found (empty list when valid)."""
        errors: list[str] = []
        if not self.planner.model:
            errors.append("two_agent.planner.model is not specified")
        if not self.executor.model:
            errors.append("two_agent.executor.model is not specified")
        if not self.planner.capabilities:
            errors.append("two_agent.planner must have at least one capability")
        if not self.executor.capabilities:
            errors.append("two_agent.executor must have at least one capability")

        shared = set(self.planner.capabilities) & set(self.executor.capabilities)
        for capability in CONFLICTING_CAPABILITIES:
            if capability in shared:
                errors.append(
                    f"Capability '{capability}' should not be shared between planner and executor"
                )
        return errors


class LoggingConfig(BaseModel):
    level: str = "INFO"
    log_dir: str = "./data/logs"
    max_file_size_mb: int = 100
    backup_count: int = 5
    console_output: bool = False
    json_format: bool = True

    @field_validator("level")
    @classmethod
    def _valid_log_level(cls, v: str) -> str:
        upper = v.upper()
        if upper not in _VALID_LOG_LEVELS:
            raise ValueError(
                f"logging.level '{v}' is not valid. "
                f"Must be one of: {sorted(_VALID_LOG_LEVELS)}"
            )
        return upper


# ─────────────────────────────────────────────────────────────────────────────
# Root Settings
# ─────────────────────────────────────────────────────────────────────────────

class Settings(BaseSettings):
    """
    Tandem runtime settings.

    Priority (highest to lowest):
      1. Environment variables
      2. .env file
      3. config.yaml
      4. Field defaults
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        case_sensitive=False,
    )

    # -- Secrets from .env ---------------------------------------------------
    openai_api_key: Optional[str] = Field(default=None, alias="OPENAI_API_KEY")

    # -- Structured config (from config.yaml) --------------------------------
    agent: AgentConfig = Field(default_factory=AgentConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    two_agent: TwoAgentConfig = Field(default_factory=TwoAgentConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("agent", mode="before")
    @classmethod
    def _coerce_agent(cls, v: Any) -> Any:
        return AgentConfig(**v) if isinstance(v, dict) else v

    @field_validator("scheduler", mode="before")
    @classmethod
    def _coerce_scheduler(cls, v: Any) -> Any:
        return SchedulerConfig(**v) if isinstance(v, dict) else v

    @field_validator("llm", mode="before")
    @classmethod
    def _coerce_llm(cls, v: Any) -> Any:
        return LLMConfig(**v) if isinstance(v, dict) else v

    @field_validator("two_agent", mode="before")
    @classmethod
    def _coerce_two_agent(cls, v: Any) -> Any:
        return TwoAgentConfig(**v) if isinstance(v, dict) else v

    @field_validator("logging", mode="before")
    @classmethod
    def _coerce_logging(cls, v: Any) -> Any:
        return LoggingConfig(**v) if isinstance(v, dict) else v

    # -- Convenience properties ----------------------------------------------

    @property
    def log_level(self) -> str:
        return self.logging.level.upper()

    @property
    def log_dir(self) -> Path:
        return Path(self.logging.log_dir)

    @property
    def two_agent_enabled(self) -> bool:
        return self.two_agent.enabled

    def apply_env_overrides(self, environ: Optional[dict[str, str]] = None) -> "Settings":
        """
        Apply the TANDEM_* switches for the two-agent mode.

        TANDEM_TWO_AGENT_MODE    true/1/yes/on enables, anything else disables
        TANDEM_PLANNER_MODEL     overrides two_agent.planner.model
        TANDEM_EXECUTOR_MODEL    overrides two_agent.executor.model
        """
        env = os.environ if environ is None else environ

        flag = env.get("TANDEM_TWO_AGENT_MODE")
        if flag is not None:
            self.two_agent.enabled = flag.strip().lower() in _TRUTHY

        planner_model = env.get("TANDEM_PLANNER_MODEL")
        if planner_model:
            self.two_agent.planner.model = planner_model

        executor_model = env.get("TANDEM_EXECUTOR_MODEL")
        if executor_model:
            self.two_agent.executor.model = executor_model

        if self.logging.level == "DEBUG":
            self.two_agent.communication.debugging = True
        return self

    def validate_all(self) -> None:
        """
        Full startup validation. Raises ConfigError listing every problem found.

        Pydantic field validators catch type/value errors at parse time; this
        method catches cross-field problems (missing API key for the chosen
        provider, capability overlap between actors, compression settings
        that can never trigger).
        """
        errors: list[str] = []

        if self.llm.provider == "openai" and not self.openai_api_key and not self.llm.base_url:
            errors.append(
                "LLM provider 'openai' requires OPENAI_API_KEY to be set "
                "in your .env file (or llm.base_url for a local endpoint)."
            )

        if self.agent.compression_keep_recent < 0:
            errors.append("agent.compression_keep_recent must be >= 0")

        if self.two_agent.enabled:
            errors.extend(self.two_agent.problems())

        if errors:
            numbered = "\n".join(f"  {i+1}. {e}" for i, e in enumerate(errors))
            raise ConfigError(
                f"\n\nTandem startup failed — {len(errors)} configuration "
                f"problem(s) found:\n\n{numbered}\n\n"
                f"Fix the issues above in config/config.yaml or your .env file "
                f"and restart.\n"
            )


# ─────────────────────────────────────────────────────────────────────────────
# Loader + singleton
# ─────────────────────────────────────────────────────────────────────────────

_singleton: Optional[Settings] = None
_singleton_lock = threading.Lock()

_KNOWN_SECTIONS = {"agent", "scheduler", "llm", "two_agent", "logging"}


def _load_yaml(path: Path) -> dict:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _resolve_config_path(config_path: str | Path | None) -> Path:
    """
    Resolve the config file path with this priority:
      1. Explicit config_path argument (from --config CLI flag)
      2. TANDEM_CONFIG environment variable
      3. Default: config/config.yaml
    """
    if config_path is not None:
        return Path(config_path)
    env_path = os.environ.get("TANDEM_CONFIG")
    if env_path:
        return Path(env_path)
    return Path("config/config.yaml")


def load_settings(config_path: str | Path | None = None) -> Settings:
    """Load settings by merging config.yaml with environment variables."""
    global _singleton
    yaml_data = _load_yaml(_resolve_config_path(config_path))
    init_kwargs = {k: v for k, v in yaml_data.items() if k in _KNOWN_SECTIONS}

    instance = Settings(**init_kwargs).apply_env_overrides()
    with _singleton_lock:
        _singleton = instance
    return instance


def get_settings() -> Settings:
    """
    Return the global Settings singleton, loading from the default config
    path on first use.
    """
    global _singleton
    if _singleton is not None:
        return _singleton
    with _singleton_lock:
        if _singleton is None:
            yaml_data = _load_yaml(_resolve_config_path(None))
            init_kwargs = {k: v for k, v in yaml_data.items() if k in _KNOWN_SECTIONS}
            _singleton = Settings(**init_kwargs).apply_env_overrides()
    return _singleton


def reset_settings() -> None:
    """Drop the cached singleton (tests and config reloads)."""
    global _singleton
    with _singleton_lock:
        _singleton = None
