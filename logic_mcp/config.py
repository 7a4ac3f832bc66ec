"""Runtime settings, read from the environment and overridden by CLI options."""

from typing import Literal, Optional

from pydantic import Field, PositiveFloat, PositiveInt, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from logic_mcp.errors import ConfigError

ENV_PREFIX = "LOGIC_MCP_"

DEFAULT_TIMEOUT = 10.0
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8080

LogLevel = Literal["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"]


def _config_error(error: ValidationError) -> ConfigError:
    problems = []
    for err in error.errors():
        name = "_".join(str(part) for part in err["loc"]).upper()
        if not name.startswith(ENV_PREFIX):
            name = ENV_PREFIX + name
        problems.append(f"{name}: {err['msg']} (got {err['input']!r})")
    return ConfigError("; ".join(problems))


class Settings(BaseSettings):
    """Server settings from ``LOGIC_MCP_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_ignore_empty=True,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )

    swipl_path: Optional[str] = Field(default=None, validation_alias="LOGIC_MCP_SWIPL")
    timeout: PositiveFloat = DEFAULT_TIMEOUT
    host: str = DEFAULT_HOST
    port: PositiveInt = Field(default=DEFAULT_PORT, le=65535)
    stateful: bool = False
    log_level: LogLevel = "INFO"
    # Stateful HTTP only
    session_idle_timeout: PositiveFloat = Field(
        default=1800.0, description="Seconds an idle session is kept"
    )
    max_sessions: PositiveInt = Field(default=256, description="Open sessions allowed at once")

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_log_level(cls, value):
        return value.upper() if isinstance(value, str) else value

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the environment.

        Raises:
            ConfigError: naming every variable that did not validate.
        """
        try:
            return cls()
        except ValidationError as e:
            raise _config_error(e) from None

    def with_overrides(self, **overrides) -> "Settings":
        """Return a validated copy with every non-None override applied."""
        values = self.model_dump()
        values.update({k: v for k, v in overrides.items() if v is not None})
        try:
            return type(self).model_validate(values)
        except ValidationError as e:
            raise _config_error(e) from None
