"""
Tests for the CLI interface.
"""
import os
import shutil
import tempfile
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest
import yaml
from typer.testing import CliRunner

from cost_ledger.cli.main import EXIT_CODE_FAIL, EXIT_CODE_PASS, app
from cost_ledger.core.anomaly import AnomalyEvent, AnomalySeverity, AnomalyType
from cost_ledger.core.collection import CollectionResult
from cost_ledger.core.reconciliation import ReconciliationStore
from cost_ledger.errors import AdapterError
from cost_ledger.storage.documents import SQLiteDocumentStore
from cost_ledger.storage.models import CollectionState, CollectionStatus, CostEntry, ResourceCost

runner = CliRunner()

NO_CONFIG = ["--config", "does-not-exist.yaml"]


@pytest.fixture
def mock_service():
    """Mock the wiring of the collection service."""
    with patch('cost_ledger.cli.main.build_collection_service') as mock_build:
        service = MagicMock()
        mock_build.return_value = service
        yield service


class TestCLI:
    """Test CLI commands against a mocked collection service."""

    def test_collect_success(self, mock_service):
        mock_service.trigger_collection.return_value = CollectionResult(
            service_id="aws", costs_collected=30, new_records=2, updated_records=28,
        )

        result = runner.invoke(app, NO_CONFIG + ["collect", "aws"])

        assert result.exit_code == EXIT_CODE_PASS
        assert "30 costs collected (2 new, 28 updated)" in result.output
        mock_service.trigger_collection.assert_called_once_with("aws")

    def test_collect_shows_warning(self, mock_service):
        mock_service.trigger_collection.return_value = CollectionResult(
            service_id="aws", costs_collected=1, new_records=1, warning="Skipped 1 invalid entries",
        )

        result = runner.invoke(app, NO_CONFIG + ["collect", "aws"])

        assert result.exit_code == EXIT_CODE_PASS
        assert "Skipped 1 invalid entries" in result.output

    def test_collect_failure(self, mock_service):
        mock_service.trigger_collection.return_value = CollectionResult(
            service_id="chatgpt",
            error=AdapterError("Authentication failed", code="adapter_auth_error"),
        )

        result = runner.invoke(app, NO_CONFIG + ["collect", "chatgpt"])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "adapter_auth_error" in result.output
        assert "Authentication failed" in result.output

    def test_collect_all_fails_if_any_service_fails(self, mock_service):
        mock_service.trigger_all.return_value = [
            CollectionResult(service_id="aws", costs_collected=1, new_records=1),
            CollectionResult(service_id="gcp", error=AdapterError("timeout")),
        ]

        result = runner.invoke(app, NO_CONFIG + ["collect-all"])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "aws" in result.output
        assert "timeout" in result.output

    def test_collect_all_without_services(self, mock_service):
        mock_service.trigger_all.return_value = []

        result = runner.invoke(app, NO_CONFIG + ["collect-all"])

        assert result.exit_code == EXIT_CODE_PASS
        assert "No services configured" in result.output

    def test_anomalies_none_found(self, mock_service):
        mock_service.get_anomalies.return_value = []

        result = runner.invoke(app, NO_CONFIG + ["anomalies"])

        assert result.exit_code == EXIT_CODE_PASS
        assert "No anomalies detected" in result.output
        mock_service.get_anomalies.assert_called_once_with(service_id=None, threshold_percent=None)

    def test_anomalies_table(self, mock_service):
        mock_service.get_anomalies.return_value = [
            AnomalyEvent(
                service_id="gcp",
                type=AnomalyType.COST_SPIKE,
                severity=AnomalySeverity.HIGH,
                current_cost=5.0,
                average_cost=1.0,
                percent_change=400.0,
                timestamp=datetime(2025, 10, 8, tzinfo=timezone.utc),
                message="Cost spike",
            )
        ]

        result = runner.invoke(app, NO_CONFIG + ["anomalies", "--service", "gcp", "--threshold", "25"])

        assert result.exit_code == EXIT_CODE_PASS
        assert "Cost Anomalies" in result.output
        mock_service.get_anomalies.assert_called_once_with(service_id="gcp", threshold_percent=25.0)

    def test_status_table(self, mock_service):
        mock_service.get_collection_statuses.return_value = {
            "aws": CollectionStatus(
                service_id="aws",
                status=CollectionState.ERROR,
                last_run=datetime(2025, 10, 8, 6, tzinfo=timezone.utc),
                error="Invalid credentials",
            ),
        }

        result = runner.invoke(app, NO_CONFIG + ["status"])

        assert result.exit_code == EXIT_CODE_PASS
        assert "Invalid credentials" in result.output
        assert "2025-10-08 06:00:00" in result.output

    def test_status_empty(self, mock_service):
        mock_service.get_collection_statuses.return_value = {}

        result = runner.invoke(app, NO_CONFIG + ["status"])

        assert "No collections have run yet" in result.output

    def test_status_for_one_service(self, mock_service):
        mock_service.get_collection_status.return_value = CollectionStatus(
            service_id="chatgpt",
            status=CollectionState.SUCCESS,
            last_run=datetime(2025, 10, 8, 6, tzinfo=timezone.utc),
            costs_collected=30,
        )

        result = runner.invoke(app, NO_CONFIG + ["status", "--service", "ChatGPT"])

        assert result.exit_code == EXIT_CODE_PASS
        assert "chatgpt" in result.output
        assert "30" in result.output
        mock_service.get_collection_status.assert_called_once_with("chatgpt")
        mock_service.get_collection_statuses.assert_not_called()

    def test_status_for_service_never_collected(self, mock_service):
        mock_service.get_collection_status.return_value = None

        result = runner.invoke(app, NO_CONFIG + ["status", "-s", "gcp"])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "No collection has run for gcp" in result.output

    def test_invalid_config_exits_with_failure(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            config_path = os.path.join(temp_dir, "bad.yaml")
            with open(config_path, 'w') as f:
                yaml.dump({"anomaly": {"threshold_percent": -1}}, f)

            result = runner.invoke(app, ["--config", config_path, "status"])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "Invalid configuration" in result.output


class TestLedgerCommands:
    """Test commands that read the ledger directly."""

    def setup_method(self):
        self.temp_dir = tempfile.mkdtemp()
        self.db_path = os.path.join(self.temp_dir, "ledger.db")
        self.config_path = os.path.join(self.temp_dir, "cost_ledger.yaml")
        with open(self.config_path, 'w', encoding='utf-8') as f:
            yaml.dump({"database": {"path": self.db_path}}, f)

    def teardown_method(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _invoke(self, *args):
        return runner.invoke(app, ["--config", self.config_path, *args])

    def _seed(self):
        store = SQLiteDocumentStore(self.db_path)
        store.initialize_schema()
        reconciler = ReconciliationStore(store)
        reconciler.reconcile("aws", [
            CostEntry("aws", datetime(2025, 10, 1, tzinfo=timezone.utc), 10.0, resources=[
                ResourceCost("ec2", "EC2", "Service", 8.0, {"env": "prod"}),
                ResourceCost("s3", "S3", "Service", 2.0, {"env": "dev"}),
            ]),
            CostEntry("aws", datetime(2025, 10, 2, tzinfo=timezone.utc), 20.0, resources=[
                ResourceCost("ec2", "EC2", "Service", 20.0, {"env": "prod"}),
            ]),
        ])
        reconciler.reconcile("chatgpt", [
            CostEntry("chatgpt", datetime(2025, 10, 1, tzinfo=timezone.utc), 1234.5),
        ])

    def test_init_creates_database(self):
        result = self._invoke("init")

        assert result.exit_code == EXIT_CODE_PASS
        assert "Database initialized successfully" in result.output
        assert os.path.exists(self.db_path)

    def test_summary(self):
        self._seed()

        result = self._invoke("summary")

        assert result.exit_code == EXIT_CODE_PASS
        assert "$30.00" in result.output
        assert "$1,234.50" in result.output
        assert "$1,264.50" in result.output

    def test_summary_date_range(self):
        self._seed()

        result = self._invoke("summary", "--start", "2025-10-02")

        assert "$20.00" in result.output
        assert "chatgpt" not in result.output

    def test_summary_empty_ledger(self):
        result = self._invoke("summary")

        assert result.exit_code == EXIT_CODE_PASS
        assert "No cost records found" in result.output

    def test_resources_with_tag_filter(self):
        self._seed()

        result = self._invoke("resources", "aws", "--tag", "env=prod")

        assert result.exit_code == EXIT_CODE_PASS
        assert "ec2" in result.output
        assert "$28.00" in result.output
        assert "s3" not in result.output

    def test_resources_rejects_malformed_tag(self):
        result = self._invoke("resources", "aws", "--tag", "prod")

        assert result.exit_code == EXIT_CODE_FAIL
        assert "key=value" in result.output

    def test_delete(self):
        self._seed()

        result = self._invoke("delete", "aws_2025-10-01")
        again = self._invoke("delete", "aws_2025-10-01")

        assert result.exit_code == EXIT_CODE_PASS
        assert again.exit_code == EXIT_CODE_FAIL
        assert "No ledger record" in again.output

    def test_costs_lists_newest_first(self):
        self._seed()

        result = self._invoke("costs")

        assert result.exit_code == EXIT_CODE_PASS
        assert "Cost Records" in result.output
        assert result.output.index("aws_2025-10-02") < result.output.index("aws_2025-10-01")
        assert "chatgpt_2025-10-01" in result.output
        assert "$1,234.50" in result.output
        assert "USD" in result.output

    def test_costs_service_filter_and_limit(self):
        self._seed()

        result = self._invoke("costs", "--service", "AWS", "--limit", "1")

        assert result.exit_code == EXIT_CODE_PASS
        assert "aws_2025-10-02" in result.output
        assert "aws_2025-10-01" not in result.output
        assert "chatgpt" not in result.output

    def test_costs_date_range(self):
        self._seed()

        result = self._invoke("costs", "--start", "2025-10-01", "--end", "2025-10-01")

        assert "aws_2025-10-01" in result.output
        assert "chatgpt_2025-10-01" in result.output
        assert "aws_2025-10-02" not in result.output

    def test_costs_empty_ledger(self):
        result = self._invoke("costs")

        assert result.exit_code == EXIT_CODE_PASS
        assert "No cost records found" in result.output

    def test_costs_rejects_non_positive_limit(self):
        result = self._invoke("costs", "--limit", "0")

        assert result.exit_code == EXIT_CODE_FAIL
        assert "limit must be > 0" in result.output

    def test_show_record_with_resources(self):
        self._seed()

        result = self._invoke("show", "aws_2025-10-01")

        assert result.exit_code == EXIT_CODE_PASS
        assert "aws_2025-10-01" in result.output
        assert "$10.00 USD" in result.output
        assert "EC2" in result.output
        assert "$8.00" in result.output
        assert "$2.00" in result.output

    def test_show_missing_record(self):
        self._seed()

        result = self._invoke("show", "aws_2025-09-30")

        assert result.exit_code == EXIT_CODE_FAIL
        assert "No ledger record aws_2025-09-30" in result.output
