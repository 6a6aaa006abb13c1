import json
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner

from ams_migrator.cli import (
    _build_transport,
    _destination_clients,
    _load_config,
    _print_report,
    _run_with_progress,
    _selected_kinds,
    _source_clients,
    main,
)
from ams_migrator.clients.models import Asset, AssetFilter, ResourceKind, StreamingPolicy
from ams_migrator.clients.platforms import AzureMediaServicesPlatform, MkioPlatform
from ams_migrator.config import AzureConfig, Config, ConfigManager, MigrationConfig, MkioConfig
from ams_migrator.migration.exporter import Exporter
from ams_migrator.migration.results import BatchResult, Operation, Outcome, RunReport
from ams_migrator.migration.snapshot import Snapshot
from ams_migrator.migration.validator import ValidationReport
from ams_migrator.utils.exceptions import (
    AuthenticationError,
    ConfigurationError,
    ValidationError,
)

pytestmark = pytest.mark.unit


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture(autouse=True)
def _isolated(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(ConfigManager, "DEFAULT_CONFIG_DIR", tmp_path / "home")
    for var in ("MKIO_API_ENDPOINT", "AZURE_SUBSCRIPTION_ID", "MKIO_TOKEN"):
        monkeypatch.delenv(var, raising=False)
    with patch("ams_migrator.cli.setup_logging"):
        yield


def _seed(account) -> None:
    account.assets.seed(Asset(name="a1"), Asset(name="a2"))
    account.asset_filters.seed("a1", *(AssetFilter(name=f"f{i}") for i in range(3)))
    account.streaming_policies.seed(StreamingPolicy(name="sp1"))


class TestMainGroup:
    def test_main_help(self, runner: CliRunner) -> None:
        result = runner.invoke(main, ["--help"])
        assert result.exit_code == 0
        for command in ("export", "import", "validate", "config", "show"):
            assert command in result.output

    def test_export_help_lists_kind_flags(self, runner: CliRunner) -> None:
        result = runner.invoke(main, ["export", "--help"])
        assert result.exit_code == 0
        assert "--asset-filters" in result.output
        assert "--streaming-endpoints" in result.output


class TestConfigCommand:
    @patch("ams_migrator.cli.ConfigManager")
    def test_new_config(self, mock_mgr_cls: MagicMock, runner: CliRunner) -> None:
        mock_mgr = MagicMock()
        mock_mgr_cls.return_value = mock_mgr
        mock_mgr.exists.return_value = False
        mock_mgr.config = Config()
        mock_mgr.config_path = Path("/tmp/config.json")

        result = runner.invoke(main, ["config"], input="\n" * 10)
        assert result.exit_code == 0
        assert "Creating a new one" in result.output
        mock_mgr.save.assert_called_once()

    @patch("ams_migrator.cli.ConfigManager")
    def test_existing_config_abort(self, mock_mgr_cls: MagicMock, runner: CliRunner) -> None:
        mock_mgr = MagicMock()
        mock_mgr_cls.return_value = mock_mgr
        mock_mgr.exists.return_value = True
        mock_mgr.config_path = Path("/tmp/config.json")

        result = runner.invoke(main, ["config"], input="n\n")
        assert result.exit_code == 0
        assert "Aborted" in result.output
        mock_mgr.save.assert_not_called()

    @patch("ams_migrator.cli.ConfigManager")
    def test_validation_error_exits(self, mock_mgr_cls: MagicMock, runner: CliRunner) -> None:
        mock_mgr = MagicMock()
        mock_mgr_cls.return_value = mock_mgr
        mock_mgr.exists.return_value = False
        mock_mgr.config = MagicMock()
        mock_mgr.config.migration.workers = 1
        mock_mgr.config.validate.side_effect = ConfigurationError("bad config")

        result = runner.invoke(main, ["config"], input="\n" * 10)
        assert result.exit_code == 1
        assert "Validation error" in result.output


class TestShowCommand:
    def test_show_no_config(self, runner: CliRunner) -> None:
        result = runner.invoke(main, ["show"])
        assert result.exit_code == 1
        assert "No configuration file found" in result.output

    def test_show_displays_config(self, runner: CliRunner) -> None:
        mgr = ConfigManager()
        mgr.set("mkio.import_subscription", "target-sub")
        mgr.save()

        result = runner.invoke(main, ["show"])
        assert result.exit_code == 0
        assert "target-sub" in result.output
        assert "migration" in result.output


class TestLoadConfig:
    def test_defaults_without_file(self) -> None:
        assert _load_config() == Config()

    def test_invalid_file_exits(self, tmp_path: Path) -> None:
        path = tmp_path / "config.json"
        path.write_text("{broken")
        with pytest.raises(SystemExit):
            _load_config(path)


class TestSelectedKinds:
    def test_no_flags_selects_everything(self) -> None:
        assert _selected_kinds({"assets": False}) == set(ResourceKind)

    def test_flags(self) -> None:
        assert _selected_kinds({"assets": True, "streaming_locators": True}) == {
            ResourceKind.ASSETS,
            ResourceKind.STREAMING_LOCATORS,
        }


class TestClientFactories:
    @patch("ams_migrator.cli.ResourceClients.create")
    def test_mkio_source(self, mock_create: MagicMock, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MKIO_TOKEN", "mk-token")
        config = Config(mkio=MkioConfig(export_subscription="source-sub"))

        _source_clients(config)

        transport = mock_create.call_args[0][0]
        assert isinstance(transport.platform, MkioPlatform)
        assert transport.platform.subscription == "source-sub"

    @patch("ams_migrator.cli.ResourceClients.create")
    def test_azure_source(self, mock_create: MagicMock) -> None:
        config = Config(azure=AzureConfig("sub", "rg", "account"))

        _source_clients(config)

        assert isinstance(mock_create.call_args[0][0].platform, AzureMediaServicesPlatform)

    def test_both_sources_rejected(self) -> None:
        config = Config(
            azure=AzureConfig("sub", "rg", "account"),
            mkio=MkioConfig(export_subscription="source-sub"),
        )
        with pytest.raises(ConfigurationError, match="both"):
            _source_clients(config)

    def test_partial_azure_rejected(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            _source_clients(Config(azure=AzureConfig(subscription="sub")))
        assert exc_info.value.config_key == "azure"

    def test_no_source_rejected(self) -> None:
        with pytest.raises(ConfigurationError, match="No export source"):
            _source_clients(Config())

    def test_destination_requires_subscription(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            _destination_clients(Config())
        assert exc_info.value.config_key == "mkio.import_subscription"

    def test_destination_requires_token(self) -> None:
        with pytest.raises(AuthenticationError, match="MKIO_TOKEN"):
            _destination_clients(Config(mkio=MkioConfig(import_subscription="target")))

    def test_transport_pacing(self) -> None:
        platform = MkioPlatform("sub", "token")
        paced = _build_transport(
            platform, Config(migration=MigrationConfig(requests_per_second=5.0, workers=4))
        )
        unpaced = _build_transport(platform, Config())
        assert paced._rate_limiter is not None
        assert unpaced._rate_limiter is None


class TestRunWithProgress:
    def test_runs_coroutine(self) -> None:
        async def coro() -> str:
            return "done"

        mock_exporter = MagicMock(spec=Exporter)

        assert _run_with_progress(coro, mock_exporter, desc="Testing") == "done"
        mock_exporter.set_progress_callback.assert_called_once()

    def test_progress_callback_updates_bar(self) -> None:
        captured = []

        async def coro() -> None:
            captured[0](Outcome.succeeded("a1"))

        mock_exporter = MagicMock(spec=Exporter)
        mock_exporter.set_progress_callback.side_effect = captured.append

        _run_with_progress(coro, mock_exporter)

        assert len(captured) == 1


class TestPrintReport:
    def test_prints_table_and_failures(self, capsys: pytest.CaptureFixture) -> None:
        report = RunReport()
        failed = BatchResult("StreamingLocators", Operation.IMPORT, failed=["l1"])
        failed.seal()
        report.add(failed)

        _print_report(report)
        output = capsys.readouterr().out

        assert "StreamingLocators" in output
        assert "Import StreamingLocators:" in output
        assert "l1" in output


class TestExportCommand:
    def test_export_success(self, runner: CliRunner, source, tmp_path: Path) -> None:
        _seed(source)
        output = tmp_path / "out.json"

        with patch("ams_migrator.cli._source_clients", return_value=source.clients):
            result = runner.invoke(main, ["export", "--migration-file", str(output)])

        assert result.exit_code == 0, result.output
        assert f"Exported content written to file: {output}" in result.output
        data = json.loads(output.read_text())
        assert [a["name"] for a in data["Assets"]] == ["a1", "a2"]
        assert len(data["AssetFilters"]["a1"]) == 3

    def test_export_selected_kinds(self, runner: CliRunner, source, tmp_path: Path) -> None:
        _seed(source)
        output = tmp_path / "out.json"

        with patch("ams_migrator.cli._source_clients", return_value=source.clients):
            result = runner.invoke(
                main,
                ["export", "--streaming-policies", "--migration-file", str(output)],
            )

        assert result.exit_code == 0, result.output
        data = json.loads(output.read_text())
        assert data["Assets"] == []
        assert len(data["StreamingPolicies"]) == 1

    def test_filters_without_assets_rejected(self, runner: CliRunner) -> None:
        result = runner.invoke(main, ["export", "--asset-filters"])
        assert result.exit_code == 1
        assert "requires Asset export" in result.output

    def test_export_failures_exit_nonzero(self, runner: CliRunner, source, tmp_path: Path) -> None:
        _seed(source)
        source.asset_filters.fail_list.add("a1")
        output = tmp_path / "out.json"

        with patch("ams_migrator.cli._source_clients", return_value=source.clients):
            result = runner.invoke(main, ["export", "--migration-file", str(output)])

        assert result.exit_code == 1
        assert output.exists()
        assert "Export AssetFilters:" in result.output

    def test_no_source_exits(self, runner: CliRunner) -> None:
        result = runner.invoke(main, ["export", "--assets"])
        assert result.exit_code == 1
        assert "No export source" in result.output


class TestImportCommand:
    @pytest.fixture
    def migration_file(self, tmp_path: Path) -> Path:
        snapshot = Snapshot(
            assets=[Asset(name="a1"), Asset(name="a2")],
            asset_filters={"a1": [AssetFilter(name="f1")]},
        )
        return snapshot.save(tmp_path / "migration.json")

    def test_import_success(self, runner: CliRunner, destination, migration_file: Path) -> None:
        with patch("ams_migrator.cli._destination_clients", return_value=destination.clients):
            result = runner.invoke(main, ["import", "--migration-file", str(migration_file)])

        assert result.exit_code == 0, result.output
        assert set(destination.assets.items) == {"a1", "a2"}
        assert ("a1", "f1") in destination.asset_filters.items

    def test_import_twice_skips(self, runner: CliRunner, destination, migration_file: Path) -> None:
        args = ["import", "--migration-file", str(migration_file), "--workers", "2"]
        with patch("ams_migrator.cli._destination_clients", return_value=destination.clients):
            runner.invoke(main, args)
            result = runner.invoke(main, args)

        assert result.exit_code == 0, result.output
        assert sorted(destination.assets.names("create")) == ["a1", "a2"]
        assert "Skipped" in result.output

    def test_import_failure_exits_nonzero(
        self, runner: CliRunner, destination, migration_file: Path
    ) -> None:
        destination.assets.fail_create.add("a2")
        with patch("ams_migrator.cli._destination_clients", return_value=destination.clients):
            result = runner.invoke(
                main, ["import", "--assets", "--migration-file", str(migration_file)]
            )

        assert result.exit_code == 1
        assert "Import Assets:" in result.output

    def test_missing_migration_file_option(self, runner: CliRunner) -> None:
        result = runner.invoke(main, ["import"])
        assert result.exit_code == 1
        assert "Missing --migration-file" in result.output

    def test_unreadable_migration_file(self, runner: CliRunner, tmp_path: Path) -> None:
        result = runner.invoke(
            main, ["import", "--migration-file", str(tmp_path / "absent.json")]
        )
        assert result.exit_code == 1
        assert "Failed to read migration file" in result.output

    def test_invalid_cdn_policy_choice(self, runner: CliRunner, migration_file: Path) -> None:
        result = runner.invoke(
            main,
            ["import", "--migration-file", str(migration_file), "--cdn-provider-policy", "drop"],
        )
        assert result.exit_code == 2


class TestValidateCommand:
    @pytest.fixture
    def migration_file(self, tmp_path: Path) -> Path:
        return Snapshot().save(tmp_path / "migration.json")

    @patch("ams_migrator.cli.Validator")
    @patch("ams_migrator.cli._destination_clients")
    def test_validate_success(
        self,
        mock_clients: MagicMock,
        mock_validator_cls: MagicMock,
        runner: CliRunner,
        migration_file: Path,
    ) -> None:
        mock_validator_cls.return_value.validate.return_value = ValidationReport(
            endpoint="default", validated=4
        )

        result = runner.invoke(
            main,
            ["validate", "--migration-file", str(migration_file), "--endpoint", "default"],
        )

        assert result.exit_code == 0, result.output
        assert "All StreamingLocators validated" in result.output
        assert mock_validator_cls.call_args.kwargs["endpoint_name"] == "default"

    @patch("ams_migrator.cli.Validator")
    @patch("ams_migrator.cli._destination_clients")
    def test_validate_failure(
        self,
        mock_clients: MagicMock,
        mock_validator_cls: MagicMock,
        runner: CliRunner,
        migration_file: Path,
    ) -> None:
        mock_validator_cls.return_value.validate.return_value = ValidationReport(
            endpoint="default",
            missing=["l1"],
            error=ValidationError("Validation failed", missing=["l1"]),
        )

        result = runner.invoke(main, ["validate", "--migration-file", str(migration_file)])

        assert result.exit_code == 1
        assert "missing: l1" in result.output

    @patch("ams_migrator.cli.Validator")
    @patch("ams_migrator.cli._destination_clients")
    def test_no_running_endpoint(
        self,
        mock_clients: MagicMock,
        mock_validator_cls: MagicMock,
        runner: CliRunner,
        migration_file: Path,
    ) -> None:
        mock_validator_cls.return_value.validate.side_effect = ValidationError(
            "No Running StreamingEndpoint found for testing"
        )

        result = runner.invoke(main, ["validate", "--migration-file", str(migration_file)])

        assert result.exit_code == 1
        assert "No Running StreamingEndpoint" in result.output
