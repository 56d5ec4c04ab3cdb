"""User defaults for sagekit sessions.

Settings are read from a YAML file and overridden by environment variables.
Validation happens on load so a bad role ARN or bucket name fails before any
AWS call is made.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
import re
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
import yaml

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "SAGEKIT_CONFIG"
DEFAULT_CONFIG_PATH = Path.home() / ".sagekit" / "config.yaml"

_ENV_OVERRIDES = {
    "region": "AWS_DEFAULT_REGION",
    "role": "SAGEMAKER_EXECUTION_ROLE_ARN",
    "default_bucket": "SAGEKIT_DEFAULT_BUCKET",
}


class SagekitConfig(BaseModel):
    """Defaults applied to every :class:`sagekit.session.Session`."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    region: str | None = None
    role: str | None = None
    default_bucket: str | None = None
    poll_interval: Annotated[float, Field(gt=0)] = 5.0
    max_attempts: Annotated[int, Field(ge=1, le=20)] = 5
    log_level: str = "INFO"

    @field_validator("role")
    @classmethod
    def validate_role_arn(cls, v: str | None) -> str | None:
        """Validate that role is a proper IAM role ARN."""
        if v is None:
            return v
        if not re.match(r"^arn:aws[a-z-]*:iam::\d{12}:role/.+$", v):
            raise ValueError(
                f"role ARN format invalid. Expected: arn:aws:iam::ACCOUNT_ID:role/ROLE_NAME. Got: {v}"
            )
        return v

    @field_validator("default_bucket")
    @classmethod
    def validate_bucket_name(cls, v: str | None) -> str | None:
        """Validate S3 bucket naming rules."""
        if v is None:
            return v
        if len(v) < 3 or len(v) > 63:
            raise ValueError(f"bucket name must be 3-63 characters. Got: {len(v)}")
        if not re.match(r"^[a-z0-9][a-z0-9.-]*[a-z0-9]$", v):
            raise ValueError(
                f"bucket name must start/end with letter or number, contain only lowercase letters, numbers, hyphens, periods. Got: {v}"
            )
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"unknown log_level: {v}")
        return level


def _read_yaml(path: Path) -> dict[str, Any]:
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"config file {path} must contain a mapping, got {type(data).__name__}")
    # allow the settings to live under a top-level "sagekit" key
    return data.get("sagekit", data)


def load_config(path: str | Path | None = None) -> SagekitConfig:
    """Load configuration from YAML, then apply environment overrides.

    Args:
        path: Explicit config file. Falls back to ``$SAGEKIT_CONFIG`` and then
            ``~/.sagekit/config.yaml``. A missing default file is not an error.

    Returns:
        Validated, frozen configuration.

    Raises:
        FileNotFoundError: If an explicitly requested file does not exist.
        pydantic.ValidationError: If a value is invalid.
    """
    explicit = path or os.environ.get(CONFIG_ENV_VAR)
    values: dict[str, Any] = {}
    if explicit:
        config_path = Path(explicit)
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
        values = _read_yaml(config_path)
        logger.debug("Loaded sagekit config from %s", config_path)
    elif DEFAULT_CONFIG_PATH.exists():
        values = _read_yaml(DEFAULT_CONFIG_PATH)
        logger.debug("Loaded sagekit config from %s", DEFAULT_CONFIG_PATH)

    for field_name, env_var in _ENV_OVERRIDES.items():
        env_value = os.environ.get(env_var)
        if env_value:
            values[field_name] = env_value

    return SagekitConfig(**values)
