# src/bucket_mirror/config.py
"""
Configuration for the bucket-mirror tool.

Settings are read from a JSON document. Account fields missing from the
document fall back to environment variables, so that credentials can be kept
out of the file (and in a `.env` file loaded by the CLI instead).
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from bucket_mirror.exceptions import ConfigError

DEFAULT_CONCURRENCY: int = 10
DEFAULT_MAX_RETRIES: int = 3
ENV_PREFIX: str = "BUCKET_MIRROR"


def _get_env_var(name: str, default: Optional[str] = None) -> str:
    """
    Retrieves a required environment variable.

    Args:
        name (str): The name of the environment variable.
        default (str, optional): The default value if the variable is not set.

    Returns:
        str: The value of the environment variable.
    """
    value: Optional[str] = os.environ.get(name, default)
    if not value:
        raise ConfigError(f"Environment variable '{name}' must be set.")
    return value


def _positive_or_default(value: Any, default: int, name: str) -> int:
    """Normalise an optional integer setting, replacing non-positive values."""
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"'{name}' must be an integer, got {value!r}.")
    return value if value > 0 else default


@dataclass(frozen=True)
class AccountConfig:
    """
    Credentials and bucket for one side of the mirror.

    Attributes:
        access_key (str): The access key ID.
        secret_key (str): The secret access key.
        region (str): The region the bucket lives in.
        bucket (str): The bucket name.
        endpoint_url (str, optional): Endpoint of an S3-compatible service.
            None means the provider's default endpoint for the region.
    """

    access_key: str
    secret_key: str
    region: str
    bucket: str
    endpoint_url: Optional[str] = None

    def as_boto_dict(self) -> Dict[str, str]:
        """
        Returns the configuration as keyword arguments for an aiobotocore client.

        Returns:
            Dict[str, str]: A dictionary of client parameters.
        """
        params: Dict[str, str] = {
            "aws_access_key_id": self.access_key,
            "aws_secret_access_key": self.secret_key,
            "region_name": self.region,
        }
        if self.endpoint_url:
            params["endpoint_url"] = self.endpoint_url
        return params

    @classmethod
    def from_mapping(cls, side: str, data: Mapping[str, Any]) -> "AccountConfig":
        """
        Build an account from a JSON object, falling back to the environment.

        Args:
            side (str): Either "source" or "destination"; selects the
                environment variable names used as fallback.
            data (Mapping[str, Any]): The decoded JSON object for this side.

        Returns:
            AccountConfig: The resolved account configuration.
        """
        env_prefix: str = f"{ENV_PREFIX}_{side.upper()}"

        def resolve(name: str, default: Optional[str] = None) -> str:
            value: Any = data.get(name)
            if value:
                return str(value)
            return _get_env_var(f"{env_prefix}_{name.upper()}", default)

        endpoint_url: Optional[str] = data.get("endpoint_url") or os.environ.get(
            f"{env_prefix}_ENDPOINT_URL"
        )
        return cls(
            access_key=resolve("access_key"),
            secret_key=resolve("secret_key"),
            region=resolve("region", "us-east-1"),
            bucket=resolve("bucket"),
            endpoint_url=endpoint_url or None,
        )


@dataclass(frozen=True)
class AppConfig:
    """
    Defines the run's operational parameters.

    Attributes:
        concurrency (int): Maximum number of objects processed at once.
        max_retries (int): Max attempts per request, handed to the client's
            retry policy.
    """

    concurrency: int = DEFAULT_CONCURRENCY
    max_retries: int = DEFAULT_MAX_RETRIES

    def __post_init__(self) -> None:
        # Non-positive values mean "unset".
        if self.concurrency <= 0:
            object.__setattr__(self, "concurrency", DEFAULT_CONCURRENCY)
        if self.max_retries <= 0:
            object.__setattr__(self, "max_retries", DEFAULT_MAX_RETRIES)


@dataclass(frozen=True)
class Config:
    """
    Top-level configuration container for the entire application.

    Attributes:
        source (AccountConfig): The account and bucket objects are read from.
        destination (AccountConfig): The account and bucket objects are copied to.
        app (AppConfig): General run settings.
    """

    source: AccountConfig
    destination: AccountConfig
    app: AppConfig = field(default_factory=AppConfig)


def load_config(path: Path) -> Config:
    """
    Load and validate the configuration document.

    Args:
        path (Path): Path of the JSON configuration file.

    Returns:
        Config: The parsed configuration.

    Raises:
        ConfigError: If the file is unreadable, is not valid JSON, or lacks
            a required field.
    """
    try:
        raw: str = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Failed to read config file '{path}': {e}") from e

    try:
        data: Any = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Failed to parse config file '{path}': {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config file '{path}' must contain a JSON object.")

    for side in ("source", "destination"):
        if not isinstance(data.get(side, {}), dict):
            raise ConfigError(f"'{side}' in '{path}' must be a JSON object.")

    return Config(
        source=AccountConfig.from_mapping("source", data.get("source", {})),
        destination=AccountConfig.from_mapping(
            "destination", data.get("destination", {})
        ),
        app=AppConfig(
            concurrency=_positive_or_default(
                data.get("concurrency"), DEFAULT_CONCURRENCY, "concurrency"
            ),
            max_retries=_positive_or_default(
                data.get("max_retries"), DEFAULT_MAX_RETRIES, "max_retries"
            ),
        ),
    )
