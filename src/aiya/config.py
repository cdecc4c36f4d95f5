"""Application settings for aiya.

Settings Loading Priority (highest to lowest):
    1. Constructor arguments
    2. Environment variables (AIYA_* prefix)
    3. Project config (./.aiya/settings.json)
    4. User config (~/.aiya/settings.json)
    5. .env file
    6. Default values

Shell policy (trusted and blocked patterns, confirmation toggles) lives in
its own YAML file, see ``AiyaSettings.load_shell_config``.
"""

from pathlib import Path
from typing import Any, Literal, Tuple, Type

from pydantic import Field, field_validator
from pydantic_settings import (
    BaseSettings,
    JsonConfigSettingsSource,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from aiya.logging import Loggers
from aiya.tools.shell.audit import AuditConfig
from aiya.tools.shell.config import ShellToolConfig

logger = Loggers.config()

APP_NAME = "aiya"


def _get_json_config_source(
    settings_cls: Type[BaseSettings],
    json_file: Path,
) -> PydanticBaseSettingsSource | None:
    """Create a JSON config source if the file exists."""
    if not json_file.exists():
        return None
    return JsonConfigSettingsSource(settings_cls, json_file=json_file)


class AiyaSettings(BaseSettings):
    """Settings for an aiya session.

    Example:
        settings = AiyaSettings(workspace_root="~/projects/demo")
        client = ShellToolClient.from_settings(settings, prompt=my_prompt)
    """

    model_config = SettingsConfigDict(
        env_prefix="AIYA_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = Field(
        default=APP_NAME,
        title="App Name",
        description="Application name, used for config directory names",
        json_schema_extra={"ui_order": 200},
    )
    workspace_root: Path = Field(
        default_factory=Path.cwd,
        title="Workspace Root",
        description="Directory the shell tool is confined to",
        json_schema_extra={"ui_order": 1},
    )

    log_level: Literal["debug", "info", "warning", "error"] = Field(
        default="warning",
        title="Log Level",
        description="Logging verbosity level",
        json_schema_extra={"ui_order": 50},
    )
    log_format: Literal["console", "json"] = Field(
        default="console",
        title="Log Format",
        description="Log output format (console for dev, json for production)",
        json_schema_extra={"ui_order": 51},
    )

    shell_config_file: Path | None = Field(
        default=None,
        title="Shell Config File",
        description="YAML file with shell policy; the default locations are searched when unset",
        json_schema_extra={"ui_order": 10},
    )
    audit_persist: bool = Field(
        default=False,
        title="Persist Audit Log",
        description="Mirror security events and executions to daily JSONL files",
        json_schema_extra={"ui_order": 30},
    )
    audit_log_dir: Path = Field(
        default_factory=lambda: Path.home() / f".{APP_NAME}" / "logs",
        title="Audit Log Directory",
        description="Directory for persisted audit logs",
        json_schema_extra={"ui_order": 31},
    )

    @field_validator("workspace_root", "shell_config_file", "audit_log_dir", mode="before")
    @classmethod
    def expand_path(cls, v: str | Path | None) -> Path | None:
        """Expand ~ in paths."""
        if isinstance(v, str):
            return Path(v).expanduser()
        return v

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        """Layer project and user JSON config between env vars and .env.

        JSON sources are only included if the files exist.
        """
        sources: list[PydanticBaseSettingsSource] = [init_settings, env_settings]

        for json_file in (
            Path.cwd() / f".{APP_NAME}" / "settings.json",
            Path.home() / f".{APP_NAME}" / "settings.json",
        ):
            source = _get_json_config_source(settings_cls, json_file)
            if source:
                sources.append(source)

        sources.append(dotenv_settings)
        return tuple(sources)

    def load_shell_config(self) -> ShellToolConfig:
        """Resolve the shell policy for a new session.

        An explicit ``shell_config_file`` wins; otherwise the default
        user and project locations are searched.

        Raises:
            ShellConfigurationError: If the file holds an invalid policy.
        """
        if self.shell_config_file is not None:
            logger.debug("loading_shell_config", path=str(self.shell_config_file))
            return ShellToolConfig.from_yaml(self.shell_config_file)
        return ShellToolConfig.load_default(self.app_name)

    def audit_config(self) -> AuditConfig:
        return AuditConfig(persist=self.audit_persist, log_dir=str(self.audit_log_dir))


def load_settings(**overrides: Any) -> AiyaSettings:
    """Build settings from all sources, with explicit overrides on top."""
    return AiyaSettings(**overrides)
