"""
Integration configuration.

Config is read from ~/.atspoke-graph/config.json with environment variable
overrides, and validated before a run starts.
"""

import json
import os
import re
from collections.abc import Callable
from pathlib import Path
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator
from pydantic.alias_generators import to_camel

logger = structlog.get_logger(__name__)

MAX_COUNT = 1_000_000_000

_LEADING_INTEGER = re.compile(r"[+-]?[0-9]+")

ENV_MAPPINGS = {
    "apiKey": "ATSPOKE_API_KEY",
    "numRequests": "ATSPOKE_NUM_REQUESTS",
}


class ConfigurationError(Exception):
    """Raised when the integration config is missing or unusable."""
    pass


def parse_count(raw: Any) -> int:
    """
    Parse a user-supplied count into [0, MAX_COUNT].

    Only the leading integer counts: " 37 " -> 37, "037 dogs" -> 37,
    "37.1" -> 37. Anything without one is 0, negatives are 0, and values
    past one billion are clamped to one billion.
    """
    try:
        text = "" if raw is None else str(raw).strip()
        match = _LEADING_INTEGER.match(text)
        if not match:
            return 0

        number = match.group()
        if number.startswith("-"):
            return 0

        digits = number.lstrip("+").lstrip("0") or "0"
        # Skip int() on huge inputs; it refuses very long digit strings
        if len(digits) > len(str(MAX_COUNT)):
            return MAX_COUNT
        return min(int(digits), MAX_COUNT)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Could not parse a count from {raw!r}") from e


class IntegrationConfig(BaseModel):
    """Instance config fields."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    api_key: SecretStr | None = None
    # Optional cap on requests ingested per run; blank or 0 means no cap
    num_requests: str | None = None

    @field_validator("num_requests", mode="before")
    @classmethod
    def _num_requests_as_text(cls, value: Any) -> str | None:
        # Hand-edited config files may hold a bare number
        return None if value is None else str(value)

    @property
    def request_limit(self) -> int | None:
        """Parsed numRequests, or None when no cap applies."""
        if not self.num_requests:
            return None
        return parse_count(self.num_requests) or None

    def api_key_value(self) -> str:
        return self.api_key.get_secret_value() if self.api_key else ""


class IntegrationInstance(BaseModel):
    """One configured connection to an atSpoke org."""

    id: str = "local"
    name: str = "atSpoke"
    config: IntegrationConfig = Field(default_factory=IntegrationConfig)


def get_config_path() -> Path:
    """Get the configuration file path."""
    return Path.home() / ".atspoke-graph" / "config.json"


def load_config(path: str | Path | None = None) -> IntegrationInstance:
    """
    Load configuration from file, with environment variable overrides.

    Priority:
    1. Environment variables
    2. Config file values
    """
    config_path = Path(path) if path else get_config_path()
    data: dict[str, Any] = {}

    if config_path.exists():
        with open(config_path) as f:
            data = json.load(f)

    config_data = dict(data.get("config", {}))
    for config_key, env_var in ENV_MAPPINGS.items():
        env_value = os.environ.get(env_var)
        if env_value is not None:
            config_data[config_key] = env_value

    return IntegrationInstance(
        id=os.environ.get("ATSPOKE_INSTANCE_ID", data.get("id", "local")),
        name=os.environ.get("ATSPOKE_INSTANCE_NAME", data.get("name", "atSpoke")),
        config=IntegrationConfig.model_validate(config_data),
    )


def save_config(instance: IntegrationInstance, path: str | Path | None = None) -> Path:
    """Save configuration to file, readable by the owner only."""
    config_path = Path(path) if path else get_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)

    payload = {
        "id": instance.id,
        "name": instance.name,
        "config": {
            "apiKey": instance.config.api_key_value(),
            "numRequests": instance.config.num_requests or "",
        },
    }
    with open(config_path, "w") as f:
        json.dump(payload, f, indent=2)

    # Contains the API key
    os.chmod(config_path, 0o600)
    logger.info("Saved config", path=str(config_path))
    return config_path


def validate_invocation(
    instance: IntegrationInstance,
    create_client: Callable[[], Any],
) -> None:
    """
    Check config before a run.

    Raises ConfigurationError when the API key is missing. Otherwise builds a
    client and lets AtSpokeAuthenticationError from verify_authentication()
    through when the provider rejects the key.
    """
    if not instance.config.api_key_value():
        raise ConfigurationError("Config requires all of {apiKey}")

    if instance.config.num_requests:
        logger.info("Request cap configured", num_requests=instance.config.request_limit)

    create_client().verify_authentication()
