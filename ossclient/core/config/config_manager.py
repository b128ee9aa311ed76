"""Resolve transfer configuration from file, environment, and overrides."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from ossclient.core.config.helpers import parse_bytes
from ossclient.core.config.transfer_config import RetryPolicy, TransferConfig
from ossclient.core.const import CONFIG_DIR, CONFIG_FILE
from ossclient.core.exceptions import ConfigLoadError

logger = logging.getLogger(__name__)

_ENV_MAP: dict[str, str] = {
    "api_url": "OSS_API_URL",
    "chunk_size": "OSS_CHUNK_SIZE",
    "batch_cap": "OSS_BATCH_CAP",
    "stream_read_size": "OSS_STREAM_READ_SIZE",
    "request_timeout": "OSS_REQUEST_TIMEOUT",
    "use_acceleration": "OSS_USE_ACCELERATION",
}

_RETRY_ENV_MAP: dict[str, str] = {
    "max_attempts": "OSS_RETRY_MAX_ATTEMPTS",
    "backoff_base_seconds": "OSS_RETRY_BACKOFF_BASE",
    "backoff_max_seconds": "OSS_RETRY_BACKOFF_MAX",
}

YES_CONFIRMATION = {"1", "true", "yes", "y"}


class ConfigManager:
    """Build effective transfer configuration.

    Precedence, lowest first: model defaults, YAML config file, environment
    variables, explicit overrides.
    """

    def __init__(self, config_path: Path | None = None) -> None:
        """Initialise ConfigManager.

        Args:
            config_path: YAML file to read. Defaults to
                ``~/.ossclient/config.yaml``; a missing file is ignored.
        """
        self.config_path = config_path or Path(CONFIG_DIR) / CONFIG_FILE

    def _read_file(self) -> dict[str, Any]:
        if not self.config_path.exists():
            return {}
        try:
            with open(self.config_path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigLoadError(
                f"Failed to read config file {self.config_path}: {e}"
            ) from e
        if not isinstance(data, dict):
            raise ConfigLoadError(
                f"Config file {self.config_path} must contain a mapping"
            )
        logger.debug("Loaded transfer config from %s", self.config_path)
        return data

    def _read_env_overrides(self) -> dict[str, Any]:
        """Read configuration overrides from environment variables.

        Returns:
            A dictionary of configuration field names to override values.
        """
        overrides: dict[str, Any] = {}

        for field_name, env_var_name in _ENV_MAP.items():
            env_value = os.getenv(env_var_name)
            if env_value is None:
                continue

            if field_name in {"chunk_size", "stream_read_size"}:
                try:
                    overrides[field_name] = parse_bytes(env_value)
                except ValueError:
                    logger.warning("Ignoring invalid %s=%r", env_var_name, env_value)
                    continue
            elif field_name == "batch_cap":
                try:
                    overrides[field_name] = int(env_value)
                except ValueError:
                    logger.warning("Ignoring invalid %s=%r", env_var_name, env_value)
                    continue
            elif field_name == "request_timeout":
                try:
                    overrides[field_name] = float(env_value)
                except ValueError:
                    logger.warning("Ignoring invalid %s=%r", env_var_name, env_value)
                    continue
            elif field_name == "use_acceleration":
                overrides[field_name] = env_value.lower() in YES_CONFIRMATION
            else:
                overrides[field_name] = env_value

        retry_overrides: dict[str, Any] = {}
        for field_name, env_var_name in _RETRY_ENV_MAP.items():
            env_value = os.getenv(env_var_name)
            if env_value is None:
                continue
            try:
                if field_name == "max_attempts":
                    retry_overrides[field_name] = int(env_value)
                else:
                    retry_overrides[field_name] = float(env_value)
            except ValueError:
                logger.warning("Ignoring invalid %s=%r", env_var_name, env_value)
        if retry_overrides:
            overrides["retry"] = retry_overrides

        return overrides

    def resolve_effective_config(
        self, overrides: dict[str, Any] | None = None
    ) -> TransferConfig:
        """Resolve the effective transfer configuration for this run.

        Args:
            overrides: Optional explicit configuration overrides.

        Returns:
            The resolved ``TransferConfig``.

        Raises:
            ConfigLoadError: If the merged values fail validation.
        """
        merged: dict[str, Any] = {}
        layers = (self._read_file(), self._read_env_overrides(), overrides or {})
        try:
            for layer in layers:
                for key, value in layer.items():
                    if key == "retry" and isinstance(value, RetryPolicy):
                        value = value.model_dump()
                    if key == "retry" and isinstance(merged.get("retry"), dict):
                        merged["retry"] = {**merged["retry"], **value}
                    elif key in {"chunk_size", "stream_read_size"}:
                        merged[key] = parse_bytes(value)
                    else:
                        merged[key] = value
            return TransferConfig.model_validate(merged)
        except (ValidationError, ValueError, TypeError) as e:
            raise ConfigLoadError(f"Invalid transfer configuration: {e}") from e
