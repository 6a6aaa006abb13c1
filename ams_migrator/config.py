import json
import logging
import os
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, List, Optional

import click

from .utils.exceptions import AuthenticationError, ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_MKIO_ENDPOINT = "https://api.mk.io"
CDN_PROVIDER_POLICIES = ("keep", "coerce", "fail")

MKIO_TOKEN_ENV = "MKIO_TOKEN"

# Azure tokens come from azure-identity, see auth/azure.py
TOKEN_ENV_VARS = {
    "mkio": MKIO_TOKEN_ENV,
}


@dataclass
class AzureConfig:
    subscription: str = ""
    resource_group: str = ""
    account_name: str = ""

    @property
    def is_set(self) -> bool:
        return bool(self.subscription or self.resource_group or self.account_name)


@dataclass
class MkioConfig:
    api_endpoint: str = DEFAULT_MKIO_ENDPOINT
    import_subscription: str = ""
    export_subscription: str = ""


@dataclass
class MigrationConfig:
    workers: int = 1
    overwrite: bool = False
    created_after: str = ""
    created_before: str = ""
    fairplay_ams_compatibility: bool = False
    cdn_provider_policy: str = "keep"
    migration_file: str = ""
    request_timeout_seconds: int = 30
    requests_per_second: float = 0.0


def _is_iso_timestamp(value: str) -> bool:
    try:
        datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return False
    return True


@dataclass
class Config:
    azure: AzureConfig = field(default_factory=AzureConfig)
    mkio: MkioConfig = field(default_factory=MkioConfig)
    migration: MigrationConfig = field(default_factory=MigrationConfig)

    def validate(self) -> None:
        errors: List[str] = []
        if self.migration.workers < 1:
            errors.append("migration.workers must be >= 1")
        if self.migration.request_timeout_seconds <= 0:
            errors.append("migration.request_timeout_seconds must be > 0")
        if self.migration.requests_per_second < 0:
            errors.append("migration.requests_per_second must be >= 0")
        if self.migration.cdn_provider_policy not in CDN_PROVIDER_POLICIES:
            errors.append(
                "migration.cdn_provider_policy must be one of: "
                + ", ".join(CDN_PROVIDER_POLICIES)
            )
        for key in ("created_after", "created_before"):
            value = getattr(self.migration, key)
            if value and not _is_iso_timestamp(value):
                errors.append(f"migration.{key} must be an ISO-8601 timestamp")
        if not self.mkio.api_endpoint:
            errors.append("mkio.api_endpoint must not be empty")
        if errors:
            raise ConfigurationError(
                "Configuration validation failed:\n"
                + "\n".join(f"  - {e}" for e in errors)
            )


def validate_config(config: Config) -> None:
    config.validate()


def config_to_dict(config: Config) -> dict:
    return asdict(config)


def config_from_dict(data: dict) -> Config:
    az_data = data.get("azure", {})
    azure = AzureConfig(
        subscription=az_data.get("subscription", ""),
        resource_group=az_data.get("resource_group", ""),
        account_name=az_data.get("account_name", ""),
    )

    mk_data = data.get("mkio", {})
    mkio = MkioConfig(
        api_endpoint=mk_data.get("api_endpoint", DEFAULT_MKIO_ENDPOINT),
        import_subscription=mk_data.get("import_subscription", ""),
        export_subscription=mk_data.get("export_subscription", ""),
    )

    mig_data = data.get("migration", {})
    migration = MigrationConfig(
        workers=mig_data.get("workers", 1),
        overwrite=mig_data.get("overwrite", False),
        created_after=mig_data.get("created_after", ""),
        created_before=mig_data.get("created_before", ""),
        fairplay_ams_compatibility=mig_data.get("fairplay_ams_compatibility", False),
        cdn_provider_policy=mig_data.get("cdn_provider_policy", "keep"),
        migration_file=mig_data.get("migration_file", ""),
        request_timeout_seconds=mig_data.get("request_timeout_seconds", 30),
        requests_per_second=mig_data.get("requests_per_second", 0.0),
    )

    return Config(azure=azure, mkio=mkio, migration=migration)


def get_token(provider: str) -> str:
    """Read the access token for ``provider`` from its environment variable."""
    env_var = TOKEN_ENV_VARS.get(provider)
    if env_var is None:
        raise ConfigurationError(f"Unknown token provider: {provider}")
    token = os.environ.get(env_var, "")
    if not token:
        raise AuthenticationError(
            f"Could not find {env_var} environment variable", provider=provider
        )
    return token


class ConfigManager:
    """Manages configuration loading, saving, and access for the migrator."""

    DEFAULT_CONFIG_DIR = Path.home() / ".ams-migrator"
    DEFAULT_CONFIG_FILE = "config.json"

    def __init__(self, config_path: Optional[Path] = None) -> None:
        self._config_path = config_path or (
            self.DEFAULT_CONFIG_DIR / self.DEFAULT_CONFIG_FILE
        )
        self._config: Optional[Config] = None

    @property
    def config_path(self) -> Path:
        return self._config_path

    @property
    def config(self) -> Config:
        if self._config is None:
            self._config = Config()
        return self._config

    def ensure_config_dir(self) -> None:
        self._config_path.parent.mkdir(parents=True, exist_ok=True)

    def load(self) -> Config:
        if not self._config_path.exists():
            raise ConfigurationError(
                f"Configuration file not found: {self._config_path}\n"
                "Run 'ams-migrator config' to create one."
            )

        try:
            raw = self._config_path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigurationError(f"Failed to read configuration file: {e}") from e

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ConfigurationError(
                f"Invalid JSON in configuration file {self._config_path}: {e}"
            ) from e

        config = config_from_dict(data)
        self._apply_env_overrides(config)
        config.validate()
        self._config = config
        logger.info("Configuration loaded from %s", self._config_path)
        return config

    def load_or_default(self) -> Config:
        """Like load(), but a missing file yields defaults plus env overrides."""
        if self.exists():
            return self.load()
        config = Config()
        self._apply_env_overrides(config)
        self._config = config
        return config

    @staticmethod
    def _apply_env_overrides(config: Config) -> None:
        api_endpoint = os.environ.get("MKIO_API_ENDPOINT")
        if api_endpoint:
            config.mkio.api_endpoint = api_endpoint
            logger.debug(
                "Overriding mkio.api_endpoint from MKIO_API_ENDPOINT environment variable"
            )

        subscription = os.environ.get("AZURE_SUBSCRIPTION_ID")
        if subscription:
            config.azure.subscription = subscription
            logger.debug(
                "Overriding azure.subscription from "
                "AZURE_SUBSCRIPTION_ID environment variable"
            )

    def save(self) -> None:
        self.ensure_config_dir()
        if self._config is None:
            self._config = Config()
        data = config_to_dict(self._config)
        try:
            self._config_path.write_text(
                json.dumps(data, indent=2) + "\n", encoding="utf-8"
            )
        except OSError as e:
            raise ConfigurationError(f"Failed to write configuration file: {e}") from e
        logger.info("Configuration saved to %s", self._config_path)

    def get(self, key: str, default: Any = None) -> Any:
        if self._config is None:
            try:
                self.load()
            except ConfigurationError:
                self._config = Config()
        obj: Any = self._config
        for segment in key.split("."):
            if not hasattr(obj, segment):
                return default
            obj = getattr(obj, segment)
        return obj

    def set(self, key: str, value: Any) -> None:
        if self._config is None:
            try:
                self.load()
            except ConfigurationError:
                self._config = Config()

        segments = key.split(".")
        obj: Any = self._config
        for segment in segments[:-1]:
            if not hasattr(obj, segment):
                raise ConfigurationError(
                    f"Invalid configuration key: {key} (unknown segment '{segment}')",
                    config_key=key,
                )
            obj = getattr(obj, segment)

        final = segments[-1]
        if not final or not hasattr(obj, final):
            raise ConfigurationError(
                f"Invalid configuration key: {key} (unknown segment '{final}')",
                config_key=key,
            )
        setattr(obj, final, value)

    def get_or_prompt(self, key: str, prompt_text: str, is_secret: bool = False) -> str:
        existing = self.get(key)
        if existing:
            value = click.prompt(prompt_text, default=existing, hide_input=is_secret)
        else:
            value = click.prompt(prompt_text, default="", hide_input=is_secret)
        self.set(key, value)
        return str(value)

    def exists(self) -> bool:
        return self._config_path.exists()
