"""Loading of gemrelay.yaml.

Handles discovery, parsing and environment interpolation of gemrelay.yaml,
and resolves each section against environment variables and CLI overrides.
"""

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, SecretStr, ValidationError

from gemrelay.constants import API_KEY_ENV_VAR
from gemrelay.exceptions import ConfigurationError
from gemrelay.models.config import (
    LLMConfig,
    LoggingConfig,
    ModelPricing,
    RecorderConfig,
    RecordMode,
    RetryPolicy,
)

# ${NAME} or ${NAME:-fallback}
ENV_VAR_PATTERN = re.compile(r"\$\{([^}:-]+)(?::-([^}]*))?\}")

# Searched in the working directory, first match wins
CONFIG_FILE_NAMES = ["gemrelay.yaml", ".gemrelay.yaml", "gemrelay.yml", ".gemrelay.yml"]

RECORD_MODE_ENV_VAR = "GEMRELAY_RECORD_MODE"
CASSETTE_DIR_ENV_VAR = "GEMRELAY_CASSETTE_DIR"


def is_google_auth_enabled() -> bool:
    """Whether a Google API key is present in the environment."""
    return bool(os.environ.get(API_KEY_ENV_VAR))


class CLIOverrides(BaseModel):
    """Command-line overrides. Only set values override the file."""

    model: str | None = None
    api_key: str | None = None
    temperature: float | None = None
    max_output_tokens: int | None = None
    record_mode: RecordMode | None = None
    cassette_dir: str | None = None
    log_level: str | None = None


class FileConfig(BaseModel):
    """Schema for gemrelay.yaml."""

    llm: LLMConfig = Field(default_factory=LLMConfig)
    retry: RetryPolicy = Field(default_factory=RetryPolicy)
    pricing: ModelPricing = Field(default_factory=ModelPricing)
    recording: RecorderConfig = Field(default_factory=RecorderConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


class ConfigLoader:
    """Load and merge configuration from files, environment and CLI arguments."""

    @staticmethod
    def discover_config_file(explicit_path: Path | None = None) -> Path | None:
        """Find the configuration file.

        Raises:
            ConfigurationError: If an explicit path is given but missing.
        """
        if explicit_path is not None:
            if not explicit_path.exists():
                msg = f"Configuration file not found: {explicit_path}"
                raise ConfigurationError(msg)
            return explicit_path

        cwd = Path.cwd()
        return next(
            (cwd / name for name in CONFIG_FILE_NAMES if (cwd / name).exists()),
            None,
        )

    @staticmethod
    def load_yaml(path: Path) -> dict[str, Any]:
        """Parse a YAML file into a dictionary (empty file → empty dict).

        Raises:
            ConfigurationError: If the file cannot be read or parsed.
        """
        try:
            with path.open() as f:
                content = yaml.safe_load(f)
        except yaml.YAMLError as e:
            msg = f"Failed to parse configuration file {path}: {e}"
            raise ConfigurationError(msg) from e
        except OSError as e:
            msg = f"Failed to read configuration file {path}: {e}"
            raise ConfigurationError(msg) from e
        if content is None:
            return {}
        if not isinstance(content, dict):
            msg = f"Configuration file {path} must contain a mapping"
            raise ConfigurationError(msg)
        return content

    @staticmethod
    def interpolate_env_vars(value: Any) -> Any:
        """Recursively expand ``${VAR}`` and ``${VAR:-default}`` in strings.

        Raises:
            ConfigurationError: If a variable without default is unset.
        """
        if isinstance(value, dict):
            return {k: ConfigLoader.interpolate_env_vars(v) for k, v in value.items()}
        if isinstance(value, list):
            return [ConfigLoader.interpolate_env_vars(item) for item in value]
        if not isinstance(value, str):
            return value

        def replace(match: re.Match[str]) -> str:
            var_name, default_value = match.group(1), match.group(2)
            env_value = os.environ.get(var_name)
            if env_value is not None:
                return env_value
            if default_value is not None:
                return default_value
            msg = f"Environment variable {var_name} is not set"
            raise ConfigurationError(msg)

        return ENV_VAR_PATTERN.sub(replace, value)

    @staticmethod
    def load_config(explicit_path: Path | None = None) -> FileConfig:
        """Discover, load and validate the configuration file.

        Returns:
            Parsed FileConfig; all defaults when no file is found.

        Raises:
            ConfigurationError: If the file exists but is invalid.
        """
        config_path = ConfigLoader.discover_config_file(explicit_path)
        if config_path is None:
            return FileConfig()

        raw_config = ConfigLoader.interpolate_env_vars(ConfigLoader.load_yaml(config_path))
        try:
            return FileConfig.model_validate(raw_config)
        except ValidationError as e:
            msg = f"Invalid configuration in {config_path}: {e}"
            raise ConfigurationError(msg) from e

    @staticmethod
    def resolve_llm_config(
        file_config: FileConfig,
        cli_overrides: CLIOverrides | None = None,
    ) -> LLMConfig:
        """Resolve provider settings: CLI > file > GOOGLE_API_KEY > defaults.

        The API key stays unset when none is found; the provider reports that
        as a ConfigurationError on first use.
        """
        updates: dict[str, Any] = {}
        if file_config.llm.api_key is None and is_google_auth_enabled():
            updates["api_key"] = SecretStr(os.environ[API_KEY_ENV_VAR])
        if cli_overrides:
            if cli_overrides.model is not None:
                updates["model"] = cli_overrides.model
            if cli_overrides.api_key is not None:
                updates["api_key"] = SecretStr(cli_overrides.api_key)
            if cli_overrides.temperature is not None:
                updates["temperature"] = cli_overrides.temperature
            if cli_overrides.max_output_tokens is not None:
                updates["max_output_tokens"] = cli_overrides.max_output_tokens
        return LLMConfig.model_validate({**file_config.llm.model_dump(), **updates})

    @staticmethod
    def resolve_recorder_config(
        file_config: FileConfig,
        cli_overrides: CLIOverrides | None = None,
    ) -> RecorderConfig:
        """Resolve record/replay settings: CLI > environment > file.

        Raises:
            ConfigurationError: If GEMRELAY_RECORD_MODE holds an unknown mode.
        """
        mode = file_config.recording.mode
        cassette_dir = file_config.recording.cassette_dir

        env_mode = os.environ.get(RECORD_MODE_ENV_VAR)
        if env_mode:
            try:
                mode = RecordMode(env_mode.lower())
            except ValueError as e:
                valid = ", ".join(m.value for m in RecordMode)
                msg = f"{RECORD_MODE_ENV_VAR}={env_mode!r} is not one of: {valid}"
                raise ConfigurationError(msg) from e
        cassette_dir = os.environ.get(CASSETTE_DIR_ENV_VAR, cassette_dir)

        if cli_overrides:
            if cli_overrides.record_mode is not None:
                mode = cli_overrides.record_mode
            if cli_overrides.cassette_dir is not None:
                cassette_dir = cli_overrides.cassette_dir

        return RecorderConfig(mode=mode, cassette_dir=cassette_dir)

    @staticmethod
    def resolve_logging_config(
        file_config: FileConfig,
        cli_overrides: CLIOverrides | None = None,
    ) -> LoggingConfig:
        """Resolve logging settings: CLI level > file.

        Raises:
            ConfigurationError: If the overriding level is not a known level.
        """
        if cli_overrides is None or cli_overrides.log_level is None:
            return file_config.logging
        try:
            return LoggingConfig.model_validate(
                {**file_config.logging.model_dump(), "level": cli_overrides.log_level.upper()}
            )
        except ValidationError as e:
            msg = f"Invalid log level: {cli_overrides.log_level}"
            raise ConfigurationError(msg) from e


def load_config(explicit_path: Path | None = None) -> FileConfig:
    """Convenience wrapper around ConfigLoader.load_config."""
    return ConfigLoader.load_config(explicit_path)
