from __future__ import annotations

import json
import logging
import re
import sys
from datetime import UTC, datetime
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from typer.testing import CliRunner

from gcp_provisioner.cli import app
from gcp_provisioner.config.loader import ConfigError
from gcp_provisioner.core.state import LiveRecord, State
from gcp_provisioner.engine.errors import (
    ApplyCanceled,
    CycleError,
    LockHeldError,
    StalePlanError,
    StateLockError,
    TransientProviderError,
)
from gcp_provisioner.engine.types import (
    Action,
    ApplyResult,
    DriftReport,
    DriftStatus,
    Plan,
    PlanMetadata,
    PlanStep,
    ResourceDrift,
    StepResult,
    StepStatus,
)

runner = CliRunner()

_META = PlanMetadata(
    destroy=False,
    refresh=True,
    state_lineage="lineage-1",
    state_serial=0,
    state_digest="digest",
    config_digest="cdigest",
    engine_version="0.1.0",
)

_NOOP_PLAN = Plan(
    metadata=_META,
    steps=[
        PlanStep(
            address="network.vpc",
            resource_type="network",
            name="vpc",
            action=Action.NOOP,
            reason="up to date",
        )
    ],
)

_CREATE_PLAN = Plan(
    metadata=_META,
    steps=[
        PlanStep(
            address="subnetwork.primary",
            resource_type="subnetwork",
            name="primary",
            action=Action.CREATE,
            reason="not in state",
            desired={"name": "primary", "ip_cidr_range": "10.0.0.0/20"},
            planned={"name": "primary", "ip_cidr_range": "10.0.0.0/20"},
        )
    ],
)

_CREATE_RESULT = ApplyResult(
    steps=[
        StepResult(
            address="subnetwork.primary",
            resource_type="subnetwork",
            action=Action.CREATE,
            status=StepStatus.SUCCESS,
        )
    ]
)


def _strip_ansi(text: str) -> str:
    return re.sub(r"\x1b\[[0-9;]*m", "", text)


def _mock_config() -> MagicMock:
    cfg = MagicMock()
    cfg.provider.project = "demo-project"
    cfg.state_path = Path(".gcp-state.json")
    return cfg


def _state(n: int) -> State:
    return State(
        records={
            f"network.n{i}": LiveRecord(
                address=f"network.n{i}", resource_type="network", name=f"n{i}", id=f"id-{i}"
            )
            for i in range(n)
        }
    )


def _drift_report() -> DriftReport:
    return DriftReport(
        resources={
            "subnetwork.primary": ResourceDrift(
                address="subnetwork.primary",
                resource_type="subnetwork",
                status=DriftStatus.DRIFTED,
                drifted={"ip_cidr_range": {"stored": "10.0.0.0/20", "live": "10.0.0.0/19"}},
            )
        }
    )


class TestVersion:
    def test_version_flag(self) -> None:
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert "gcp-provisioner" in result.stdout

    def test_short_version_flag(self) -> None:
        result = runner.invoke(app, ["-V"])
        assert result.exit_code == 0
        assert "gcp-provisioner" in result.stdout


class TestPlanCommand:
    @patch("gcp_provisioner.config.plan")
    @patch("gcp_provisioner.config.load")
    def test_no_changes_exits_0(self, mock_load: MagicMock, mock_plan: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_plan.return_value = _NOOP_PLAN

        result = runner.invoke(app, ["plan", "--no-color", "--config", "test.yaml"])
        assert result.exit_code == 0
        assert "No changes" in result.stdout
        mock_load.assert_called_once_with(Path("test.yaml"))

    @patch("gcp_provisioner.config.plan")
    @patch("gcp_provisioner.config.load")
    def test_changes_exits_2(self, mock_load: MagicMock, mock_plan: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_plan.return_value = _CREATE_PLAN

        result = runner.invoke(app, ["plan", "--no-color"])
        assert result.exit_code == 2
        assert "subnetwork.primary will be created" in result.stdout
        assert "Plan: 1 to add, 0 to change, 0 to destroy." in result.stdout

    @patch("gcp_provisioner.config.plan")
    @patch("gcp_provisioner.config.load")
    def test_json_prints_report(self, mock_load: MagicMock, mock_plan: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_plan.return_value = _CREATE_PLAN

        result = runner.invoke(app, ["plan", "--json"])
        assert result.exit_code == 2
        report = json.loads(result.stdout)
        assert report == [
            {
                "address": "subnetwork.primary",
                "type": "subnetwork",
                "name": "primary",
                "action": "create",
                "reason": "not in state",
                "blocked": False,
                "changed_attributes": [],
            }
        ]

    @patch("gcp_provisioner.config.plan")
    @patch("gcp_provisioner.config.load")
    def test_out_saves_plan(
        self, mock_load: MagicMock, mock_plan: MagicMock, tmp_path: Path
    ) -> None:
        mock_load.return_value = _mock_config()
        mock_plan.return_value = _CREATE_PLAN
        out_file = tmp_path / "plan.json"

        result = runner.invoke(app, ["plan", "--no-color", "--out", str(out_file)])
        assert result.exit_code == 2
        assert "Plan saved" in result.stdout
        assert Plan.load(out_file).steps[0].address == "subnetwork.primary"

    @patch("gcp_provisioner.config.load")
    def test_config_error_exits_1(self, mock_load: MagicMock) -> None:
        mock_load.side_effect = ConfigError("bad config")

        result = runner.invoke(app, ["plan", "--no-color"])
        assert result.exit_code == 1
        assert "Configuration error: bad config" in result.output

    @patch("gcp_provisioner.config.plan")
    @patch("gcp_provisioner.config.load")
    def test_validation_error_lists_each_problem(
        self, mock_load: MagicMock, mock_plan: MagicMock
    ) -> None:
        mock_load.return_value = _mock_config()
        mock_plan.side_effect = CycleError(["network.a", "network.b", "network.a"])

        result = runner.invoke(app, ["plan", "--no-color"])
        assert result.exit_code == 1
        assert "Validation failed" in result.output
        assert "network.a" in result.output

    @patch("gcp_provisioner.config.plan")
    @patch("gcp_provisioner.config.load")
    def test_lock_held_suggests_force_unlock(
        self, mock_load: MagicMock, mock_plan: MagicMock
    ) -> None:
        mock_load.return_value = _mock_config()
        mock_plan.side_effect = LockHeldError(
            lock_id="abc123", holder="ci@runner", acquired_at=datetime.now(UTC)
        )

        result = runner.invoke(app, ["plan", "--no-color"])
        assert result.exit_code == 1
        assert "State is locked" in result.output
        assert "gcp-provisioner force-unlock abc123" in result.output

    @patch("gcp_provisioner.config.plan")
    @patch("gcp_provisioner.config.load")
    def test_no_refresh_flag(self, mock_load: MagicMock, mock_plan: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_plan.return_value = _NOOP_PLAN

        runner.invoke(app, ["plan", "--no-color", "--no-refresh"])
        mock_plan.assert_called_once()
        _, kwargs = mock_plan.call_args
        assert kwargs["refresh"] is False

    @patch("gcp_provisioner.config.plan")
    @patch("gcp_provisioner.config.load")
    def test_destroy_flag(self, mock_load: MagicMock, mock_plan: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_plan.return_value = _NOOP_PLAN

        runner.invoke(app, ["plan", "--no-color", "--destroy"])
        _, kwargs = mock_plan.call_args
        assert kwargs["destroy"] is True


class TestApplyCommand:
    @patch("gcp_provisioner.config.plan")
    @patch("gcp_provisioner.config.load")
    def test_no_changes_message(self, mock_load: MagicMock, mock_plan: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_plan.return_value = _NOOP_PLAN

        result = runner.invoke(app, ["apply", "--no-color"])
        assert result.exit_code == 0
        assert "No changes. Resources are up-to-date." in result.stdout

    @patch("gcp_provisioner.config.apply")
    @patch("gcp_provisioner.config.plan")
    @patch("gcp_provisioner.config.load")
    def test_auto_approve_skips_prompt(
        self, mock_load: MagicMock, mock_plan: MagicMock, mock_apply: MagicMock
    ) -> None:
        mock_load.return_value = _mock_config()
        mock_plan.return_value = _CREATE_PLAN
        mock_apply.return_value = _CREATE_RESULT

        result = runner.invoke(app, ["apply", "--no-color", "--auto-approve"])
        assert result.exit_code == 0
        assert "Apply complete! Resources: 1 added, 0 changed, 0 destroyed." in result.stdout

    @patch("gcp_provisioner.config.apply")
    @patch("gcp_provisioner.config.plan")
    @patch("gcp_provisioner.config.load")
    def test_parallelism_passed_through(
        self, mock_load: MagicMock, mock_plan: MagicMock, mock_apply: MagicMock
    ) -> None:
        mock_load.return_value = _mock_config()
        mock_plan.return_value = _CREATE_PLAN
        mock_apply.return_value = _CREATE_RESULT

        runner.invoke(app, ["apply", "--no-color", "--auto-approve", "--parallelism", "3"])
        _, kwargs = mock_apply.call_args
        assert kwargs["parallelism"] == 3

    @patch("gcp_provisioner.config.apply")
    @patch("gcp_provisioner.config.plan")
    @patch("gcp_provisioner.config.load")
    def test_user_decline_aborts(
        self, mock_load: MagicMock, mock_plan: MagicMock, mock_apply: MagicMock
    ) -> None:
        mock_load.return_value = _mock_config()
        mock_plan.return_value = _CREATE_PLAN

        result = runner.invoke(app, ["apply", "--no-color"], input="n\n")
        assert result.exit_code == 1
        assert "Apply canceled." in result.output
        mock_apply.assert_not_called()

    @patch("gcp_provisioner.config.apply")
    @patch("gcp_provisioner.config.plan")
    @patch("gcp_provisioner.config.load")
    def test_saved_plan_applies_without_prompt(
        self,
        mock_load: MagicMock,
        mock_plan: MagicMock,
        mock_apply: MagicMock,
        tmp_path: Path,
    ) -> None:
        plan_file = tmp_path / "plan.json"
        _CREATE_PLAN.save(plan_file)
        mock_load.return_value = _mock_config()
        mock_apply.return_value = _CREATE_RESULT

        result = runner.invoke(app, ["apply", str(plan_file), "--no-color"])
        assert result.exit_code == 0
        mock_plan.assert_not_called()
        applied_plan = mock_apply.call_args.args[0]
        assert applied_plan.steps[0].address == "subnetwork.primary"

    @patch("gcp_provisioner.config.apply")
    @patch("gcp_provisioner.config.plan")
    @patch("gcp_provisioner.config.load")
    def test_partial_failure_reports_steps(
        self, mock_load: MagicMock, mock_plan: MagicMock, mock_apply: MagicMock
    ) -> None:
        mock_load.return_value = _mock_config()
        mock_plan.return_value = _CREATE_PLAN
        mock_apply.return_value = ApplyResult(
            steps=[
                StepResult(
                    address="network.vpc",
                    resource_type="network",
                    action=Action.CREATE,
                    status=StepStatus.SUCCESS,
                ),
                StepResult(
                    address="subnetwork.primary",
                    resource_type="subnetwork",
                    action=Action.CREATE,
                    status=StepStatus.FAILED,
                    error="quota exceeded",
                ),
            ]
        )

        result = runner.invoke(app, ["apply", "--no-color", "--auto-approve"])
        assert result.exit_code == 1
        assert "subnetwork.primary: failed (quota exceeded)" in result.stdout
        assert "Apply finished with errors." in result.stdout

    @patch("gcp_provisioner.config.apply")
    @patch("gcp_provisioner.config.plan")
    @patch("gcp_provisioner.config.load")
    def test_stale_plan_exits_1(
        self, mock_load: MagicMock, mock_plan: MagicMock, mock_apply: MagicMock
    ) -> None:
        mock_load.return_value = _mock_config()
        mock_plan.return_value = _CREATE_PLAN
        mock_apply.side_effect = StalePlanError("State serial changed; re-run plan")

        result = runner.invoke(app, ["apply", "--no-color", "--auto-approve"])
        assert result.exit_code == 1
        assert "Plan is stale: State serial changed" in result.output

    @patch("gcp_provisioner.config.apply")
    @patch("gcp_provisioner.config.plan")
    @patch("gcp_provisioner.config.load")
    def test_canceled_apply_prints_partial_summary(
        self, mock_load: MagicMock, mock_plan: MagicMock, mock_apply: MagicMock
    ) -> None:
        mock_load.return_value = _mock_config()
        mock_plan.return_value = _CREATE_PLAN
        mock_apply.side_effect = ApplyCanceled(
            "interrupted", result=ApplyResult(steps=_CREATE_RESULT.steps, canceled=True)
        )

        result = runner.invoke(app, ["apply", "--no-color", "--auto-approve"])
        assert result.exit_code == 1
        assert "Apply canceled." in result.output


    @patch("gcp_provisioner.config.plan")
    @patch("gcp_provisioner.config.load")
    def test_provider_error_exits_1(self, mock_load: MagicMock, mock_plan: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_plan.side_effect = TransientProviderError("rate limited")

        result = runner.invoke(app, ["apply", "--no-color"])
        assert result.exit_code == 1
        assert "Provider error (transient TransientProviderError): rate limited" in result.output


class TestDestroyCommand:
    @patch("gcp_provisioner.config.plan")
    @patch("gcp_provisioner.config.load")
    def test_no_resources_exits_0(self, mock_load: MagicMock, mock_plan: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_plan.return_value = Plan(metadata=_META, steps=[])

        result = runner.invoke(app, ["destroy", "--no-color"])
        assert result.exit_code == 0
        assert "No resources to destroy" in result.stdout

    @patch("gcp_provisioner.config.apply")
    @patch("gcp_provisioner.config.plan")
    @patch("gcp_provisioner.config.load")
    def test_auto_approve_works(
        self, mock_load: MagicMock, mock_plan: MagicMock, mock_apply: MagicMock
    ) -> None:
        delete_plan = Plan(
            metadata=_META.model_copy(update={"destroy": True}),
            steps=[
                PlanStep(
                    address="network.old",
                    resource_type="network",
                    name="old",
                    action=Action.DESTROY,
                    reason="destroy requested",
                    prior={"name": "old-net"},
                )
            ],
        )
        mock_load.return_value = _mock_config()
        mock_plan.return_value = delete_plan
        mock_apply.return_value = ApplyResult(
            steps=[
                StepResult(
                    address="network.old",
                    resource_type="network",
                    action=Action.DESTROY,
                    status=StepStatus.SUCCESS,
                )
            ]
        )

        result = runner.invoke(app, ["destroy", "--no-color", "--auto-approve"])
        assert result.exit_code == 0
        assert "network.old will be destroyed" in result.stdout
        assert "0 added, 0 changed, 1 destroyed" in result.stdout
        _, kwargs = mock_plan.call_args
        assert kwargs["destroy"] is True


class TestRefreshCommand:
    @patch("gcp_provisioner.config.refresh")
    @patch("gcp_provisioner.config.drift")
    @patch("gcp_provisioner.config.load")
    def test_no_changes_exits_0(
        self, mock_load: MagicMock, mock_drift: MagicMock, mock_refresh: MagicMock
    ) -> None:
        mock_load.return_value = _mock_config()
        mock_drift.return_value = DriftReport()

        result = runner.invoke(app, ["refresh", "--no-color"])
        assert result.exit_code == 0
        assert "up-to-date" in result.stdout
        mock_refresh.assert_not_called()

    @patch("gcp_provisioner.config.refresh")
    @patch("gcp_provisioner.config.drift")
    @patch("gcp_provisioner.config.load")
    def test_auto_approve_persists(
        self, mock_load: MagicMock, mock_drift: MagicMock, mock_refresh: MagicMock
    ) -> None:
        mock_load.return_value = _mock_config()
        mock_drift.return_value = _drift_report()
        mock_refresh.return_value = (_state(2), _state(2))

        result = runner.invoke(app, ["refresh", "--no-color", "--auto-approve"])
        assert result.exit_code == 0
        assert "subnetwork.primary has drifted" in result.stdout
        assert "State refreshed. 2 resources tracked." in result.stdout
        _, kwargs = mock_refresh.call_args
        assert kwargs["persist"] is True

    @patch("gcp_provisioner.config.refresh")
    @patch("gcp_provisioner.config.drift")
    @patch("gcp_provisioner.config.load")
    def test_user_decline_aborts(
        self, mock_load: MagicMock, mock_drift: MagicMock, mock_refresh: MagicMock
    ) -> None:
        mock_load.return_value = _mock_config()
        mock_drift.return_value = _drift_report()

        result = runner.invoke(app, ["refresh", "--no-color"], input="n\n")
        assert result.exit_code == 1
        assert "Refresh canceled." in result.output
        mock_refresh.assert_not_called()


class TestDriftCommand:
    @patch("gcp_provisioner.config.drift")
    @patch("gcp_provisioner.config.load")
    def test_no_drift_exits_0(self, mock_load: MagicMock, mock_drift: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_drift.return_value = DriftReport()

        result = runner.invoke(app, ["drift", "--no-color"])
        assert result.exit_code == 0
        assert "No drift detected" in result.stdout

    @patch("gcp_provisioner.config.drift")
    @patch("gcp_provisioner.config.load")
    def test_drift_exits_2(self, mock_load: MagicMock, mock_drift: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_drift.return_value = _drift_report()

        result = runner.invoke(app, ["drift", "--no-color"])
        assert result.exit_code == 2
        assert "Drift detected" in result.stdout
        assert '~ ip_cidr_range = "10.0.0.0/20" -> "10.0.0.0/19"' in result.stdout


class TestValidateCommand:
    @patch("gcp_provisioner.config.validate")
    @patch("gcp_provisioner.config.load")
    def test_valid_config(self, mock_load: MagicMock, mock_validate: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_validate.return_value = MagicMock(nodes={"network.vpc": None, "subnetwork.a": None})

        result = runner.invoke(app, ["validate", "--no-color"])
        assert result.exit_code == 0
        assert "Configuration is valid (2 resources)." in result.stdout

    @patch("gcp_provisioner.config.validate")
    @patch("gcp_provisioner.config.load")
    def test_cycle_fails(self, mock_load: MagicMock, mock_validate: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_validate.side_effect = CycleError(["network.a", "network.b", "network.a"])

        result = runner.invoke(app, ["validate", "--no-color"])
        assert result.exit_code == 1
        assert "Validation failed" in result.output


class TestOutputCommand:
    @patch("gcp_provisioner.config.outputs")
    @patch("gcp_provisioner.config.load")
    def test_lists_outputs(self, mock_load: MagicMock, mock_outputs: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_outputs.return_value = {"gateway": "10.0.0.1", "db_ip": "10.1.0.3"}

        result = runner.invoke(app, ["output", "--no-color"])
        assert result.exit_code == 0
        assert result.stdout.splitlines() == ['db_ip   = "10.1.0.3"', 'gateway = "10.0.0.1"']

    @patch("gcp_provisioner.config.outputs")
    @patch("gcp_provisioner.config.load")
    def test_single_output_is_raw(self, mock_load: MagicMock, mock_outputs: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_outputs.return_value = {"gateway": "10.0.0.1"}

        result = runner.invoke(app, ["output", "gateway"])
        assert result.exit_code == 0
        assert result.stdout.strip() == "10.0.0.1"

    @patch("gcp_provisioner.config.outputs")
    @patch("gcp_provisioner.config.load")
    def test_unknown_output_fails(self, mock_load: MagicMock, mock_outputs: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_outputs.return_value = {}

        result = runner.invoke(app, ["output", "missing", "--no-color"])
        assert result.exit_code == 1
        assert "Output 'missing' not found" in result.output

    @patch("gcp_provisioner.config.outputs")
    @patch("gcp_provisioner.config.load")
    def test_json(self, mock_load: MagicMock, mock_outputs: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_outputs.return_value = {"gateway": "10.0.0.1"}

        result = runner.invoke(app, ["output", "--json"])
        assert json.loads(result.stdout) == {"gateway": "10.0.0.1"}

    @patch("gcp_provisioner.config.outputs")
    @patch("gcp_provisioner.config.load")
    def test_empty(self, mock_load: MagicMock, mock_outputs: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_outputs.return_value = {}

        result = runner.invoke(app, ["output"])
        assert "No outputs recorded." in result.stdout


class TestForceUnlockCommand:
    @patch("gcp_provisioner.config.force_unlock")
    @patch("gcp_provisioner.config.load")
    def test_releases_lock(self, mock_load: MagicMock, mock_unlock: MagicMock) -> None:
        cfg = _mock_config()
        mock_load.return_value = cfg

        result = runner.invoke(app, ["force-unlock", "abc123", "--auto-approve"])
        assert result.exit_code == 0
        assert "State lock abc123 released." in result.stdout
        mock_unlock.assert_called_once_with(cfg, "abc123")

    @patch("gcp_provisioner.config.force_unlock")
    @patch("gcp_provisioner.config.load")
    def test_wrong_lock_id(self, mock_load: MagicMock, mock_unlock: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_unlock.side_effect = StateLockError("Lock id mismatch: state is locked with id xyz")

        result = runner.invoke(app, ["force-unlock", "abc123", "--auto-approve", "--no-color"])
        assert result.exit_code == 1
        assert "State lock error: Lock id mismatch" in result.output

    @patch("gcp_provisioner.config.force_unlock")
    @patch("gcp_provisioner.config.load")
    def test_decline_keeps_lock(self, mock_load: MagicMock, mock_unlock: MagicMock) -> None:
        mock_load.return_value = _mock_config()

        result = runner.invoke(app, ["force-unlock", "abc123"], input="n\n")
        assert result.exit_code == 1
        mock_unlock.assert_not_called()


class TestNoColor:
    @patch("gcp_provisioner.config.plan")
    @patch("gcp_provisioner.config.load")
    def test_no_color_strips_ansi(self, mock_load: MagicMock, mock_plan: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_plan.return_value = _CREATE_PLAN

        result = runner.invoke(app, ["plan", "--no-color"])
        assert "\x1b[" not in result.stdout

    @patch("gcp_provisioner.config.plan")
    @patch("gcp_provisioner.config.load")
    def test_no_color_env_var(
        self, mock_load: MagicMock, mock_plan: MagicMock, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("NO_COLOR", "1")
        mock_load.return_value = _mock_config()
        mock_plan.return_value = _CREATE_PLAN

        result = runner.invoke(app, ["plan"])
        assert _strip_ansi(result.stdout) == result.stdout


@pytest.fixture(autouse=False)
def _reset_pkg_logger():
    """Reset the gcp_provisioner logger level after each logging test."""
    yield
    logging.getLogger("gcp_provisioner").setLevel(logging.NOTSET)


@pytest.mark.usefixtures("_reset_pkg_logger")
class TestConfigureLogging:
    """``_configure_logging`` is tested against a mocked ``logging.basicConfig``.

    Pytest's logging plugin owns the root handler, so the calls are asserted
    rather than their effect on the root logger.
    """

    @patch("logging.basicConfig")
    def test_verbose_flag_configures_info(self, mock_bc: MagicMock) -> None:
        from gcp_provisioner.cli import _LOG_FORMAT, _configure_logging

        _configure_logging(1)
        mock_bc.assert_called_once_with(
            level=logging.WARNING,
            format=_LOG_FORMAT,
            stream=sys.stderr,
            force=True,
        )
        assert logging.getLogger("gcp_provisioner").level == logging.INFO

    @patch("logging.basicConfig")
    def test_double_verbose_configures_debug(self, mock_bc: MagicMock) -> None:
        from gcp_provisioner.cli import _configure_logging

        _configure_logging(2)
        mock_bc.assert_called_once()
        assert logging.getLogger("gcp_provisioner").level == logging.DEBUG

    @patch("logging.basicConfig")
    def test_no_verbose_stays_unconfigured(self, mock_bc: MagicMock) -> None:
        from gcp_provisioner.cli import _configure_logging

        _configure_logging(0)
        mock_bc.assert_not_called()

    @patch("logging.basicConfig")
    def test_env_var_overrides_verbose(
        self, mock_bc: MagicMock, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        from gcp_provisioner.cli import _configure_logging

        monkeypatch.setenv("GCP_PROVISIONER_LOG", "warning")
        _configure_logging(2)
        mock_bc.assert_called_once()
        assert logging.getLogger("gcp_provisioner").level == logging.WARNING

    @patch("logging.basicConfig")
    def test_invalid_env_level_warns_and_defaults_to_info(
        self,
        mock_bc: MagicMock,
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        from gcp_provisioner.cli import _configure_logging

        monkeypatch.setenv("GCP_PROVISIONER_LOG", "BOGUS")
        _configure_logging(0)
        mock_bc.assert_called_once()
        assert logging.getLogger("gcp_provisioner").level == logging.INFO
        assert "invalid GCP_PROVISIONER_LOG level" in capsys.readouterr().err
