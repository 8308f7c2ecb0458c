"""
Configuration for the ServiceNow MCP server.

Up to four instances can be configured, each from three environment
variables (also read from a .env file):

    SERVICENOW_INSTANCE_URL / _USERNAME / _PASSWORD   -> "primary"
    SERVICENOW_DEV_URL      / _USERNAME / _PASSWORD   -> "dev"
    SERVICENOW_TEST_URL     / _USERNAME / _PASSWORD   -> "test"
    SERVICENOW_PROD_URL     / _USERNAME / _PASSWORD   -> "prod"

SERVICENOW_DEFAULT_INSTANCE picks the instance used when a tool call does
not name one (default: primary).
"""

import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, HttpUrl, TypeAdapter, ValidationError, field_validator

from .errors import ConfigurationError

INSTANCE_PREFIXES = {
    "primary": "SERVICENOW_INSTANCE",
    "dev": "SERVICENOW_DEV",
    "test": "SERVICENOW_TEST",
    "prod": "SERVICENOW_PROD",
}

DEFAULT_INSTANCE = "primary"

_url_adapter = TypeAdapter(HttpUrl)


class InstanceConfig(BaseModel):
    """Connection settings for one ServiceNow instance."""

    model_config = ConfigDict(frozen=True)

    url: str
    username: str = Field(min_length=1)
    password: str = Field(min_length=1, repr=False)

    @field_validator("url")
    @classmethod
    def check_url(cls, value: str) -> str:
        try:
            _url_adapter.validate_python(value)
        except ValidationError:
            raise ValueError("Instance URL must be a valid URL") from None
        if not value.startswith("https://"):
            raise ValueError("Instance URL must use HTTPS")
        return value.rstrip("/")


class ServiceNowConfig(BaseModel):
    """All configured instances plus the default one."""

    model_config = ConfigDict(frozen=True)

    instances: dict[str, InstanceConfig]
    default_instance: str = DEFAULT_INSTANCE
    timeout: float = 30.0

    def instance(self, name: Optional[str] = None) -> InstanceConfig:
        """Return the named instance, or the default one when no name is given."""
        name = name or self.default_instance
        try:
            return self.instances[name]
        except KeyError:
            raise ConfigurationError(
                f'ServiceNow instance "{name}" is not configured. '
                f"Available instances: {', '.join(self.instances)}"
            ) from None


def load_instance_config(prefix: str) -> Optional[InstanceConfig]:
    """Read one instance from <prefix>_URL/_USERNAME/_PASSWORD. Returns None if any is unset."""
    url = os.getenv(f"{prefix}_URL")
    username = os.getenv(f"{prefix}_USERNAME")
    password = os.getenv(f"{prefix}_PASSWORD")

    if not url or not username or not password:
        return None

    try:
        return InstanceConfig(url=url, username=username, password=password)
    except ValidationError as e:
        errors = ", ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise ConfigurationError(f"Invalid configuration for {prefix}: {errors}") from None


def load_config(dotenv: bool = True) -> ServiceNowConfig:
    """
    Load and validate every configured instance from the environment.

    Raises ConfigurationError when no instance is configured, when the
    default instance is missing, or when an instance's values are invalid.
    """
    if dotenv:
        load_dotenv()

    instances = {}
    for name, prefix in INSTANCE_PREFIXES.items():
        instance = load_instance_config(prefix)
        if instance is not None:
            instances[name] = instance

    default_instance = os.getenv("SERVICENOW_DEFAULT_INSTANCE", DEFAULT_INSTANCE)
    if default_instance not in INSTANCE_PREFIXES:
        default_instance = DEFAULT_INSTANCE

    # AIDEV-NOTE: config-validation; at least one instance, and the default must be one of them
    if not instances:
        raise ConfigurationError(
            "At least one ServiceNow instance must be configured. "
            "Set SERVICENOW_INSTANCE_URL, SERVICENOW_INSTANCE_USERNAME and "
            "SERVICENOW_INSTANCE_PASSWORD in your .env file or MCP client config."
        )
    if default_instance not in instances:
        raise ConfigurationError(
            f'Default instance "{default_instance}" is not configured. '
            "Please configure it or change SERVICENOW_DEFAULT_INSTANCE."
        )

    try:
        timeout = float(os.getenv("SERVICENOW_TIMEOUT", "30"))
    except ValueError:
        raise ConfigurationError("SERVICENOW_TIMEOUT must be a number of seconds") from None

    return ServiceNowConfig(
        instances=instances,
        default_instance=default_instance,
        timeout=timeout,
    )
