import asyncio
import functools
import json
import logging
import time
from pathlib import Path
from typing import Any, Awaitable, Callable, List, Optional, Set

import click
import requests
from tqdm import tqdm

from .auth.azure import AzureAuthProvider
from .clients.models import ResourceKind
from .clients.platforms import AzureMediaServicesPlatform, MkioPlatform, Platform
from .clients.resources import ResourceClients
from .clients.transport import TransportClient
from .config import Config, ConfigManager, config_to_dict, get_token
from .migration.exporter import Exporter
from .migration.importer import Importer
from .migration.results import Outcome, RunReport
from .migration.snapshot import Snapshot
from .migration.validator import Validator
from .utils.exceptions import ConfigurationError, MigratorError
from .utils.logger import setup_logging
from .utils.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

_KIND_OPTIONS = (
    ("assets", ResourceKind.ASSETS, "Run on Assets"),
    ("asset_filters", ResourceKind.ASSET_FILTERS, "Run on Asset Filters"),
    (
        "content_key_policies",
        ResourceKind.CONTENT_KEY_POLICIES,
        "Run on ContentKeyPolicies",
    ),
    ("streaming_endpoints", ResourceKind.STREAMING_ENDPOINTS, "Run on StreamingEndpoints"),
    ("streaming_locators", ResourceKind.STREAMING_LOCATORS, "Run on StreamingLocators"),
    ("streaming_policies", ResourceKind.STREAMING_POLICIES, "Run on StreamingPolicies"),
)


def resource_options(fn: Callable[..., Any]) -> Callable[..., Any]:
    """Add one ``--<kind>`` flag per resource kind."""
    for attr, _, help_text in reversed(_KIND_OPTIONS):
        flag = "--" + attr.replace("_", "-")
        fn = click.option(flag, attr, is_flag=True, help=help_text)(fn)
    return fn


def logging_options(fn: Callable[..., Any]) -> Callable[..., Any]:
    fn = click.option(
        "--log-file",
        type=click.Path(dir_okay=False, path_type=Path),
        default=None,
        help="Also write logs to this file",
    )(fn)
    fn = click.option("--verbose", is_flag=True, help="Enable debug logging")(fn)
    return fn


def _selected_kinds(options: dict) -> Set[ResourceKind]:
    """Kinds named by flags; every kind when none is given."""
    selected = {kind for attr, kind, _ in _KIND_OPTIONS if options.get(attr)}
    return selected or {kind for _, kind, _ in _KIND_OPTIONS}


def _configure_logging(verbose: bool, log_file: Optional[Path]) -> None:
    setup_logging(level="DEBUG" if verbose else None, log_file=log_file)


def _load_config(config_path: Optional[Path] = None) -> Config:
    mgr = ConfigManager(config_path)
    try:
        return mgr.load_or_default()
    except ConfigurationError as e:
        click.echo(f"Configuration error: {e}", err=True)
        raise SystemExit(1)


def _override(config: Config, key: str, value: Any) -> None:
    if value is None:
        return
    section, name = key.split(".")
    setattr(getattr(config, section), name, value)


def _build_transport(platform: Platform, config: Config) -> TransportClient:
    migration = config.migration
    rate_limiter = None
    if migration.requests_per_second > 0:
        rate_limiter = RateLimiter(
            requests_per_second=migration.requests_per_second,
            burst_size=max(1, migration.workers),
        )
    return TransportClient(
        platform,
        session=requests.Session(),
        timeout=migration.request_timeout_seconds,
        rate_limiter=rate_limiter,
    )


def _mkio_clients(config: Config, subscription: str) -> ResourceClients:
    platform = MkioPlatform(
        subscription=subscription,
        token=get_token("mkio"),
        api_endpoint=config.mkio.api_endpoint,
    )
    return ResourceClients.create(_build_transport(platform, config))


def _source_clients(config: Config) -> ResourceClients:
    azure = config.azure
    export_subscription = config.mkio.export_subscription
    if azure.is_set and export_subscription:
        raise ConfigurationError(
            "Cannot export from both Azure and mk.io subscription"
        )
    if azure.is_set:
        if not (azure.subscription and azure.resource_group and azure.account_name):
            raise ConfigurationError(
                "Azure export requires subscription, resource group and account name",
                config_key="azure",
            )
        platform: Platform = AzureMediaServicesPlatform(
            subscription=azure.subscription,
            resource_group=azure.resource_group,
            account_name=azure.account_name,
            auth=AzureAuthProvider(),
        )
        return ResourceClients.create(_build_transport(platform, config))
    if export_subscription:
        return _mkio_clients(config, export_subscription)
    raise ConfigurationError(
        "No export source: set the Azure account or --mediakind-export-subscription"
    )


def _destination_clients(config: Config) -> ResourceClients:
    subscription = config.mkio.import_subscription
    if not subscription:
        raise ConfigurationError(
            "Missing --mediakind-import-subscription",
            config_key="mkio.import_subscription",
        )
    return _mkio_clients(config, subscription)


def _run_with_progress(
    coro_fn: Callable[[], Awaitable[Any]],
    pipeline: Any,
    desc: str = "Processing",
) -> Any:
    progress_bar = tqdm(desc=desc, unit="item")

    def on_progress(outcome: Outcome) -> None:
        progress_bar.update(1)
        progress_bar.set_postfix_str(f"{outcome.name}: {outcome.status.value}")

    pipeline.set_progress_callback(on_progress)

    try:
        return asyncio.run(coro_fn())
    finally:
        progress_bar.close()


def _print_report(report: RunReport) -> None:
    click.echo("\n--- Results ---")
    click.echo(report.format_table())
    failures = report.failures()
    if failures:
        click.echo("\n--- Failures ---")
        for label, names in failures.items():
            click.echo(f"  {label}:")
            for name in names:
                click.echo(f"    {name}")


def _exit_on_setup_error(fn: Callable[..., Any]) -> Callable[..., Any]:
    @functools.wraps(fn)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return fn(*args, **kwargs)
        except MigratorError as e:
            logger.debug("Setup failed", exc_info=True)
            click.echo(f"Error: {e}", err=True)
            raise SystemExit(1)

    return wrapper


@click.group()
@click.version_option()
def main() -> None:
    pass


@main.command()
def config() -> None:
    """Create or update the configuration file interactively."""
    mgr = ConfigManager()

    if mgr.exists():
        click.echo(f"Configuration file found: {mgr.config_path}")
        if not click.confirm("Overwrite existing configuration?", default=False):
            click.echo("Aborted.")
            return
        mgr.load()
    else:
        click.echo("No configuration file found. Creating a new one.")

    click.echo("\n--- mk.io ---")
    mgr.get_or_prompt("mkio.api_endpoint", "mk.io API endpoint")
    mgr.get_or_prompt("mkio.import_subscription", "mk.io import subscription")
    mgr.get_or_prompt(
        "mkio.export_subscription", "mk.io export subscription (blank for Azure)"
    )

    click.echo("\n--- Azure Media Services ---")
    mgr.get_or_prompt("azure.subscription", "Azure subscription ID")
    mgr.get_or_prompt("azure.resource_group", "Azure resource group")
    mgr.get_or_prompt("azure.account_name", "Azure Media Services account name")

    click.echo("\n--- Migration ---")
    workers = click.prompt(
        "Number of parallel workers", default=mgr.config.migration.workers, type=int
    )
    mgr.set("migration.workers", workers)

    try:
        mgr.config.validate()
    except ConfigurationError as e:
        click.echo(f"\nValidation error: {e}", err=True)
        raise SystemExit(1)

    mgr.save()
    click.echo(f"\nConfiguration saved to {mgr.config_path}")


@main.command()
def show() -> None:
    """Print the current configuration."""
    mgr = ConfigManager()

    if not mgr.exists():
        click.echo(f"No configuration file found at {mgr.config_path}")
        click.echo("Run 'ams-migrator config' to create one.")
        raise SystemExit(1)

    try:
        cfg = mgr.load()
    except ConfigurationError as e:
        click.echo(f"Error loading configuration: {e}", err=True)
        raise SystemExit(1)

    click.echo(f"Configuration file: {mgr.config_path}\n")
    click.echo(json.dumps(config_to_dict(cfg), indent=2))


@main.command("export")
@click.option("--azure-subscription", default=None, help="Azure subscription ID")
@click.option("--azure-resource-group", default=None, help="Azure resource group")
@click.option("--azure-account-name", default=None, help="Azure Media Services account")
@click.option(
    "--mediakind-export-subscription", default=None, help="mk.io subscription to export"
)
@click.option("--api-endpoint", default=None, help="mk.io API endpoint")
@click.option("--created-after", default=None, help="Only resources created after date")
@click.option(
    "--created-before", default=None, help="Only resources created before date"
)
@click.option("--workers", type=int, default=None, help="Number of parallel workers")
@click.option(
    "--requests-per-second",
    type=float,
    default=None,
    help="Client-side request pacing (0 disables)",
)
@click.option("--migration-file", default=None, help="Migration file to write")
@resource_options
@logging_options
@_exit_on_setup_error
def export_cmd(
    azure_subscription: Optional[str],
    azure_resource_group: Optional[str],
    azure_account_name: Optional[str],
    mediakind_export_subscription: Optional[str],
    api_endpoint: Optional[str],
    created_after: Optional[str],
    created_before: Optional[str],
    workers: Optional[int],
    requests_per_second: Optional[float],
    migration_file: Optional[str],
    verbose: bool,
    log_file: Optional[Path],
    **kinds: bool,
) -> None:
    """Export resources from Azure Media Services or mk.io to a migration file."""
    _configure_logging(verbose, log_file)

    cfg = _load_config()
    _override(cfg, "azure.subscription", azure_subscription)
    _override(cfg, "azure.resource_group", azure_resource_group)
    _override(cfg, "azure.account_name", azure_account_name)
    _override(cfg, "mkio.export_subscription", mediakind_export_subscription)
    _override(cfg, "mkio.api_endpoint", api_endpoint)
    _override(cfg, "migration.created_after", created_after)
    _override(cfg, "migration.created_before", created_before)
    _override(cfg, "migration.workers", workers)
    _override(cfg, "migration.requests_per_second", requests_per_second)
    _override(cfg, "migration.migration_file", migration_file)
    cfg.validate()

    selected = _selected_kinds(kinds)
    if ResourceKind.ASSET_FILTERS in selected and ResourceKind.ASSETS not in selected:
        raise ConfigurationError("AssetFilter export requires Asset export")

    output = cfg.migration.migration_file or f"migration-{int(time.time())}.json"
    clients = _source_clients(cfg)

    exporter = Exporter(
        clients,
        workers=cfg.migration.workers,
        created_after=cfg.migration.created_after,
        created_before=cfg.migration.created_before,
    )
    report = RunReport()

    click.echo(f"Exporting {len(selected)} resource kind(s)...")
    snapshot: Snapshot = _run_with_progress(
        lambda: exporter.export(selected, report), exporter, desc="Exporting"
    )
    snapshot.save(output)

    _print_report(report)
    click.echo(f"\nExported content written to file: {output}")
    if report.has_failures:
        raise SystemExit(1)


@main.command("import")
@click.option(
    "--mediakind-import-subscription", default=None, help="mk.io subscription to import"
)
@click.option("--api-endpoint", default=None, help="mk.io API endpoint")
@click.option("--workers", type=int, default=None, help="Number of parallel workers")
@click.option(
    "--requests-per-second",
    type=float,
    default=None,
    help="Client-side request pacing (0 disables)",
)
@click.option("--migration-file", default=None, help="Migration file to read")
@click.option(
    "--overwrite/--no-overwrite",
    default=None,
    help="Replace resources that already exist",
)
@click.option(
    "--fairplay-ams-compatibility/--no-fairplay-ams-compatibility",
    default=None,
    help="Set fairPlayAmsCompatibility on FairPlay content key policies",
)
@click.option(
    "--cdn-provider-policy",
    type=click.Choice(["keep", "coerce", "fail"]),
    default=None,
    help="What to do with StreamingEndpoints using an unsupported CDN provider",
)
@resource_options
@logging_options
@_exit_on_setup_error
def import_cmd(
    mediakind_import_subscription: Optional[str],
    api_endpoint: Optional[str],
    workers: Optional[int],
    requests_per_second: Optional[float],
    migration_file: Optional[str],
    overwrite: Optional[bool],
    fairplay_ams_compatibility: Optional[bool],
    cdn_provider_policy: Optional[str],
    verbose: bool,
    log_file: Optional[Path],
    **kinds: bool,
) -> None:
    """Import a migration file into an mk.io subscription."""
    _configure_logging(verbose, log_file)

    cfg = _load_config()
    _override(cfg, "mkio.import_subscription", mediakind_import_subscription)
    _override(cfg, "mkio.api_endpoint", api_endpoint)
    _override(cfg, "migration.workers", workers)
    _override(cfg, "migration.requests_per_second", requests_per_second)
    _override(cfg, "migration.migration_file", migration_file)
    _override(cfg, "migration.overwrite", overwrite)
    _override(cfg, "migration.fairplay_ams_compatibility", fairplay_ams_compatibility)
    _override(cfg, "migration.cdn_provider_policy", cdn_provider_policy)
    cfg.validate()

    if not cfg.migration.migration_file:
        raise ConfigurationError(
            "Missing --migration-file", config_key="migration.migration_file"
        )

    snapshot = Snapshot.load(cfg.migration.migration_file)
    clients = _destination_clients(cfg)

    importer = Importer(
        clients,
        workers=cfg.migration.workers,
        overwrite=cfg.migration.overwrite,
        fairplay_ams_compatibility=cfg.migration.fairplay_ams_compatibility,
        cdn_provider_policy=cfg.migration.cdn_provider_policy,
    )

    click.echo(f"Importing {cfg.migration.migration_file}...")
    report: RunReport = _run_with_progress(
        lambda: importer.run(snapshot, _selected_kinds(kinds)),
        importer,
        desc="Importing",
    )

    _print_report(report)
    if report.has_failures:
        raise SystemExit(1)


@main.command("validate")
@click.option(
    "--mediakind-import-subscription", default=None, help="mk.io subscription to check"
)
@click.option("--api-endpoint", default=None, help="mk.io API endpoint")
@click.option("--migration-file", default=None, help="Migration file to read")
@click.option(
    "--endpoint",
    "endpoint_name",
    default=None,
    help="StreamingEndpoint to test against (default: first Running by name)",
)
@logging_options
@_exit_on_setup_error
def validate_cmd(
    mediakind_import_subscription: Optional[str],
    api_endpoint: Optional[str],
    migration_file: Optional[str],
    endpoint_name: Optional[str],
    verbose: bool,
    log_file: Optional[Path],
) -> None:
    """Check that imported StreamingLocators are playable."""
    _configure_logging(verbose, log_file)

    cfg = _load_config()
    _override(cfg, "mkio.import_subscription", mediakind_import_subscription)
    _override(cfg, "mkio.api_endpoint", api_endpoint)
    _override(cfg, "migration.migration_file", migration_file)
    cfg.validate()

    if not cfg.migration.migration_file:
        raise ConfigurationError(
            "Missing --migration-file", config_key="migration.migration_file"
        )

    snapshot = Snapshot.load(cfg.migration.migration_file)
    clients = _destination_clients(cfg)
    validator = Validator(
        clients,
        endpoint_name=endpoint_name,
        timeout=cfg.migration.request_timeout_seconds,
    )

    result = validator.validate(snapshot.streaming_locators)

    click.echo(f"\nValidated against StreamingEndpoint {result.endpoint}")
    click.echo(f"  Playable paths:  {result.validated}")
    click.echo(f"  Missing:         {len(result.missing)}")
    click.echo(f"  Failed:          {len(result.failed)}")
    lines: List[str] = [f"    missing: {n}" for n in result.missing]
    lines += [f"    failed:  {n}" for n in result.failed]
    for line in lines:
        click.echo(line)

    if not result.ok:
        click.echo("\nValidation failed.")
        raise SystemExit(1)
    click.echo("\nAll StreamingLocators validated.")


if __name__ == "__main__":
    main()
