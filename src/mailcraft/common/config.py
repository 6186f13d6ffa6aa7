"""
Configuration management for mailcraft.

This module provides type-safe settings for the SMTP client and for
logging, loaded from environment variables, plain option dictionaries
or a TOML configuration file.
"""

import ipaddress
import os
import tomllib
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

import dns.exception
import dns.resolver
from pydantic import Field, ValidationError as PydanticValidationError
from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import InvalidConfigError, MissingConfigError

AUTH_TYPES = ("PLAIN", "LOGIN", "CRAM-MD5")
SSL_MODES = ("ssl", "tls")

DEFAULT_PORTS = {
    "ssl": 465,
    "tls": 587,
    None: 25,
}


def _resolves(hostname: str) -> bool:
    """Return True if the hostname has an A or AAAA record."""
    for record_type in ("A", "AAAA"):
        try:
            dns.resolver.resolve(hostname, record_type)
            return True
        except dns.exception.DNSException:
            continue
    return False


class SMTPSettings(BaseSettings):
    """SMTP client connection settings."""

    model_config = SettingsConfigDict(
        env_prefix="SMTP_",
        extra="ignore",
    )

    host: str = Field(default="127.0.0.1", description="SMTP server host")
    port: int = Field(
        default=0, ge=0, le=65535,
        description="SMTP server port, 0 derives it from the ssl mode",
    )
    ssl: Optional[str] = Field(
        None, description="Transport security: 'ssl' (implicit) or 'tls' (STARTTLS)"
    )
    auth_type: Optional[str] = Field(
        None, description="Authentication mechanism: PLAIN, LOGIN or CRAM-MD5"
    )
    username: Optional[str] = Field(None, description="Authentication user")
    password: Optional[str] = Field(None, description="Authentication password")
    helo: str = Field(
        default="127.0.0.1", description="Identity announced in EHLO/HELO"
    )
    timeout: float = Field(
        default=30, gt=0, description="Connection timeout in seconds"
    )
    verify_ssl: bool = Field(
        default=True, description="Verify the server certificate"
    )
    ca_file: Optional[str] = Field(None, description="Path to a CA bundle")
    max_log: int = Field(
        default=64, ge=1, description="Number of protocol lines kept in the log"
    )

    @field_validator("ssl", mode="before")
    @classmethod
    def validate_ssl(cls, v: Any) -> Optional[str]:
        """Normalize the ssl mode, treating empty values as plain SMTP."""
        if v is None or v is False or v == "":
            return None
        v_lower = str(v).lower()
        if v_lower not in SSL_MODES:
            raise ValueError(f"ssl must be one of: {', '.join(SSL_MODES)}")
        return v_lower

    @field_validator("auth_type", mode="before")
    @classmethod
    def validate_auth_type(cls, v: Any) -> Optional[str]:
        """Validate the authentication mechanism."""
        if v is None or v == "":
            return None
        v_upper = str(v).upper()
        if v_upper not in AUTH_TYPES:
            raise ValueError(
                f"auth_type must be one of: {', '.join(AUTH_TYPES)}")
        return v_upper

    @field_validator("helo")
    @classmethod
    def validate_helo(cls, v: str) -> str:
        """The HELO identity must be an IP address or a resolvable name."""
        v = v.strip()
        if not v:
            raise ValueError("helo must not be empty")
        try:
            ipaddress.ip_address(v)
            return v
        except ValueError:
            pass
        if v.lower() == "localhost" or _resolves(v):
            return v
        raise ValueError(f"Unable to resolve helo hostname '{v}'")

    @model_validator(mode="after")
    def apply_defaults(self) -> "SMTPSettings":
        """Derive the port and authentication defaults."""
        if self.username and not self.auth_type:
            self.auth_type = "PLAIN"

        if self.auth_type and not (self.username and self.password):
            raise ValueError(
                "Authentication requires both username and password")

        if not self.port:
            self.port = DEFAULT_PORTS[self.ssl]
        return self

    @property
    def use_auth(self) -> bool:
        """Whether the session authenticates after the greeting."""
        return self.auth_type is not None

    @classmethod
    def from_options(cls, options: Optional[dict[str, Any]] = None
                     ) -> "SMTPSettings":
        """
        Build settings from a plain option dictionary.

        Args:
            options: Mapping of setting names to values.

        Returns:
            Validated SMTPSettings instance.

        Raises:
            InvalidConfigError: If any option is invalid.
        """
        options = dict(options or {})
        try:
            return cls(**options)
        except PydanticValidationError as e:
            error = e.errors()[0]
            key = ".".join(str(part) for part in error.get("loc", ())) or "smtp"
            raise InvalidConfigError(
                config_key=key,
                value=options.get(key, error.get("input")),
                reason=error.get("msg"),
            ) from e


class LoggingSettings(BaseSettings):
    """Logging configuration settings."""

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        extra="ignore",
    )

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log format",
    )
    file: Optional[str] = Field(None, description="Log file path")

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Log level must be one of: {', '.join(valid_levels)}")
        return v_upper


class Settings(BaseSettings):
    """Main settings aggregating the SMTP and logging configuration."""

    model_config = SettingsConfigDict(
        env_prefix="MAILCRAFT_",
        extra="ignore",
    )

    smtp: SMTPSettings = Field(default_factory=SMTPSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @classmethod
    def from_toml(cls, path: str | Path) -> "Settings":
        """
        Load settings from a TOML configuration file.

        Args:
            path: Path to the TOML configuration file.

        Returns:
            Settings instance with loaded configuration.

        Raises:
            MissingConfigError: If the file does not exist.
            InvalidConfigError: If the file cannot be parsed or holds
                invalid values.
        """
        path = Path(path)
        if not path.exists():
            raise MissingConfigError(config_key=str(path))

        try:
            with open(path, "rb") as f:
                config_data = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            raise InvalidConfigError(
                config_key="config_file",
                value=str(path),
                reason=f"Failed to parse TOML: {e}",
            ) from e

        return cls._from_dict(config_data)

    @classmethod
    def _from_dict(cls, data: dict[str, Any]) -> "Settings":
        """
        Create settings from a dictionary.

        Args:
            data: Configuration dictionary with optional ``smtp`` and
                ``logging`` tables.

        Returns:
            Settings instance.
        """
        settings_kwargs: dict[str, Any] = {}

        if "smtp" in data:
            settings_kwargs["smtp"] = SMTPSettings.from_options(data["smtp"])

        if "logging" in data:
            try:
                settings_kwargs["logging"] = LoggingSettings(**data["logging"])
            except PydanticValidationError as e:
                raise InvalidConfigError(
                    config_key="logging",
                    value=data["logging"],
                    reason=str(e.errors()[0].get("msg")),
                ) from e

        return cls(**settings_kwargs)


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings.

    Settings come from the TOML file named by ``MAILCRAFT_CONFIG_FILE``
    when it exists, otherwise from the environment alone.

    Returns:
        Settings instance.
    """
    config_file = os.getenv("MAILCRAFT_CONFIG_FILE")

    if config_file and Path(config_file).exists():
        settings = Settings.from_toml(config_file)
    else:
        settings = Settings()

    return settings


def reload_settings() -> Settings:
    """
    Reload settings, clearing the cache.

    Returns:
        Fresh Settings instance.
    """
    get_settings.cache_clear()
    return get_settings()
