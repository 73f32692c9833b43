from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Self

import structlog
from dotenv import load_dotenv
from pydantic import Field, PrivateAttr, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from workbench.infra.errors import ConfigError

# Load .env once at module import; all BaseSettings subclasses will see the env vars
load_dotenv()

logger = structlog.get_logger()

CONFIG_DIR_NAME = ".workbench"
CONFIG_FILE_NAME = "config.json"

# Tools that run without asking. edit_file, delete_file, execute_command and
# context_write are deliberately absent so they always prompt.
DEFAULT_ALLOWED_TOOLS = [
    "read_file",
    "list_files",
    "find_files",
    "grep",
    "write_file",
    "manage_todos",
]


class ModelSettings(BaseSettings):
    """LLM provider settings. Env vars prefixed with WORKBENCH_MODEL_."""

    model_config = SettingsConfigDict(env_prefix="WORKBENCH_MODEL_")

    api_key: str = ""  # empty = CLI refuses to start
    model: str = "gpt-4o-mini"
    base_url: str | None = None
    temperature: float | None = None
    max_retries: int = Field(3, ge=0, le=10)

    @field_validator("temperature")
    @classmethod
    def _validate_temperature(cls, v: float | None) -> float | None:
        if v is not None and not (0.0 <= v <= 2.0):
            raise ValueError(f"temperature must be in [0.0, 2.0], got {v}")
        return v


class AgentSettings(BaseSettings):
    """Agent loop settings. Env vars prefixed with WORKBENCH_AGENT_."""

    model_config = SettingsConfigDict(env_prefix="WORKBENCH_AGENT_")

    allowed_tools: list[str] = Field(default_factory=lambda: list(DEFAULT_ALLOWED_TOOLS))
    loop_limit: int = 10
    loop_limit_extension: int = 10

    @field_validator("loop_limit", "loop_limit_extension")
    @classmethod
    def _validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"loop limits must be > 0, got {v}")
        return v

    @field_validator("allowed_tools")
    @classmethod
    def _validate_allowed_tools(cls, v: list[str]) -> list[str]:
        if "continue_execution" in v:
            raise ValueError(
                "continue_execution is reserved and cannot be allow-listed"
            )
        return v


class CommandSettings(BaseSettings):
    """Command sandbox settings. Env vars prefixed with WORKBENCH_COMMAND_."""

    model_config = SettingsConfigDict(env_prefix="WORKBENCH_COMMAND_")

    default_timeout_ms: int = 30_000
    max_timeout_ms: int = 600_000
    max_output_bytes: int = 10 * 1024 * 1024  # per stream
    abort_grace_ms: int = 2_000

    @model_validator(mode="after")
    def _validate(self) -> Self:
        if self.default_timeout_ms <= 0:
            raise ValueError(
                f"default_timeout_ms must be > 0, got {self.default_timeout_ms}"
            )
        if self.max_timeout_ms < self.default_timeout_ms:
            raise ValueError(
                f"max_timeout_ms ({self.max_timeout_ms}) must be >= "
                f"default_timeout_ms ({self.default_timeout_ms})"
            )
        if self.max_output_bytes <= 0:
            raise ValueError(f"max_output_bytes must be > 0, got {self.max_output_bytes}")
        if self.abort_grace_ms < 0:
            raise ValueError(f"abort_grace_ms must be >= 0, got {self.abort_grace_ms}")
        return self


class Settings(BaseSettings):
    """Root settings composing all sub-configurations."""

    model_config = SettingsConfigDict(env_prefix="WORKBENCH_", extra="ignore")

    model: ModelSettings = Field(default_factory=ModelSettings)
    agent: AgentSettings = Field(default_factory=AgentSettings)
    command: CommandSettings = Field(default_factory=CommandSettings)
    project_root: Path = Path(".")
    config_dir_name: str = CONFIG_DIR_NAME
    enable_logging: bool = False
    log_level: str = "INFO"

    _config_problems: list[str] = PrivateAttr(default_factory=list)

    @field_validator("config_dir_name")
    @classmethod
    def _validate_config_dir_name(cls, v: str) -> str:
        if not v or "/" in v or "\\" in v or v in {".", ".."}:
            raise ValueError(f"config_dir_name must be a single directory name (got '{v}')")
        return v

    @property
    def config_dir(self) -> Path:
        return self.project_root / self.config_dir_name

    @property
    def config_file(self) -> Path:
        return self.config_dir / CONFIG_FILE_NAME

    @property
    def config_problems(self) -> tuple[str, ...]:
        """Reasons the project config file was ignored by load_settings()."""
        return tuple(self._config_problems)


def _read_config_file(path: Path) -> tuple[dict[str, Any], str | None]:
    """Return the config object and, when the file had to be ignored, the reason."""
    if not path.is_file():
        return {}, None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        return {}, f"unreadable: {e}"
    if not isinstance(data, dict):
        return {}, f"expected a JSON object, got {type(data).__name__}"
    return data, None


def load_settings(project_root: Path | None = None) -> Settings:
    """Load settings once at startup: environment first, project config file on top.

    Values in <root>/<config_dir_name>/config.json override environment values
    per group. The directory name itself comes from the environment so that
    loading and saving agree on the location. Nothing is logged here because
    logging is configured from the result; see log_settings_loaded().
    Raises ConfigError when the merged values fail validation.
    """
    root = (project_root or Path.cwd()).resolve()
    try:
        base = Settings(project_root=root)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e
    file_data, problem = _read_config_file(base.config_file)

    def _group(key: str) -> dict[str, Any]:
        value = file_data.get(key, {})
        return value if isinstance(value, dict) else {}

    top_level = {
        k: v
        for k, v in file_data.items()
        if k in {"enable_logging", "log_level"}
    }
    try:
        settings = Settings(
            model=ModelSettings(**_group("model")),
            agent=AgentSettings(**_group("agent")),
            command=CommandSettings(**_group("command")),
            project_root=root,
            config_dir_name=base.config_dir_name,
            **top_level,
        )
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e

    if problem is not None:
        settings._config_problems.append(problem)
    return settings


def log_settings_loaded(settings: Settings) -> None:
    """Report the loaded settings. Call after setup_logging()."""
    for problem in settings.config_problems:
        logger.warning(
            "project_config_ignored", path=str(settings.config_file), reason=problem
        )
    logger.info(
        "settings_loaded",
        project_root=str(settings.project_root),
        config_dir=str(settings.config_dir),
        model=settings.model.model,
        allowed_tools=settings.agent.allowed_tools,
    )


def save_project_config(settings: Settings) -> Path:
    """Persist the project-scoped part of settings (never the API key)."""
    settings.config_dir.mkdir(parents=True, exist_ok=True)
    payload = {
        "model": settings.model.model_dump(exclude={"api_key"}, exclude_none=True),
        "agent": settings.agent.model_dump(),
        "command": settings.command.model_dump(),
        "enable_logging": settings.enable_logging,
        "log_level": settings.log_level,
    }
    settings.config_file.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    logger.info("project_config_saved", path=str(settings.config_file))
    return settings.config_file


def init_project(settings: Settings) -> None:
    """Create the reserved directory with a default config and a catch-all .gitignore.

    Idempotent: an existing config.json is left untouched.
    """
    settings.config_dir.mkdir(parents=True, exist_ok=True)
    if not settings.config_file.exists():
        save_project_config(settings)
    gitignore = settings.config_dir / ".gitignore"
    gitignore.write_text("# Ignore everything in this directory\n*\n", encoding="utf-8")
    logger.info("project_initialized", config_dir=str(settings.config_dir))
