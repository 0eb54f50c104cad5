from __future__ import annotations

import re

from gcp_provisioner.cli.formatting import (
    format_apply_report,
    format_apply_summary,
    format_drift,
    format_outputs,
    format_plan,
    format_plan_summary,
    format_step,
)
from gcp_provisioner.engine.references import UNKNOWN_TEXT
from gcp_provisioner.engine.schema import REDACTED
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

_META = PlanMetadata(
    destroy=False,
    refresh=True,
    state_lineage="lineage-1",
    state_serial=0,
    state_digest="digest",
    config_digest="cdigest",
    engine_version="0.1.0",
)


def _strip_ansi(text: str) -> str:
    return re.sub(r"\x1b\[[0-9;]*m", "", text)


def _step(address: str, action: Action, **kwargs: object) -> PlanStep:
    resource_type, name = address.split(".", 1)
    return PlanStep(
        address=address, resource_type=resource_type, name=name, action=action, **kwargs
    )


def _result(*statuses: tuple[str, Action, StepStatus], canceled: bool = False) -> ApplyResult:
    return ApplyResult(
        steps=[
            StepResult(
                address=address,
                resource_type=address.split(".")[0],
                action=action,
                status=status,
                error="boom" if status == StepStatus.FAILED else None,
            )
            for address, action, status in statuses
        ],
        canceled=canceled,
    )


class TestFormatPlanSummary:
    def test_all_zeros(self) -> None:
        result = format_plan_summary({"create": 0, "update": 0, "destroy": 0}, color=False)
        assert result == "Plan: 0 to add, 0 to change, 0 to destroy."

    def test_with_counts(self) -> None:
        result = format_plan_summary({"create": 2, "update": 1, "destroy": 3}, color=False)
        assert result == "Plan: 2 to add, 1 to change, 3 to destroy."

    def test_replace_counts_as_add_and_destroy(self) -> None:
        result = format_plan_summary({"create": 1, "replace": 2}, color=False)
        assert result == "Plan: 3 to add, 0 to change, 2 to destroy."

    def test_blocked_steps_listed_after_counts(self) -> None:
        result = format_plan_summary({"destroy": 1, "blocked": 2}, color=False)
        assert result == (
            "Plan: 0 to add, 0 to change, 1 to destroy. 2 blocked by deletion protection."
        )

    def test_color_mode_contains_ansi(self) -> None:
        result = format_plan_summary({"create": 1, "update": 0, "destroy": 0}, color=True)
        assert "\x1b[" in result
        assert "1 to add" in _strip_ansi(result)


class TestFormatApplySummary:
    def test_success_counts(self) -> None:
        result = _result(
            ("network.vpc", Action.CREATE, StepStatus.SUCCESS),
            ("subnetwork.a", Action.REPLACE, StepStatus.SUCCESS),
            ("router.r", Action.UPDATE, StepStatus.SUCCESS),
            ("address.old", Action.DESTROY, StepStatus.SUCCESS),
        )
        assert format_apply_summary(result, color=False) == (
            "Apply complete! Resources: 2 added, 1 changed, 2 destroyed."
        )

    def test_empty_result_is_complete(self) -> None:
        result = format_apply_summary(ApplyResult(), color=False)
        assert result == "Apply complete! Resources: 0 added, 0 changed, 0 destroyed."

    def test_errors_show_status_counts(self) -> None:
        result = _result(
            ("network.vpc", Action.CREATE, StepStatus.SUCCESS),
            ("subnetwork.a", Action.CREATE, StepStatus.FAILED),
            ("router.r", Action.CREATE, StepStatus.SKIPPED),
        )
        assert format_apply_summary(result, color=False) == (
            "Apply finished with errors. Steps: 1 success, 1 failed, 1 skipped."
        )

    def test_canceled(self) -> None:
        result = _result(
            ("network.vpc", Action.CREATE, StepStatus.SUCCESS),
            ("subnetwork.a", Action.CREATE, StepStatus.NOT_STARTED),
            canceled=True,
        )
        text = format_apply_summary(result, color=False)
        assert text.startswith("Apply canceled.")
        assert "1 not-started" in text

    def test_color_mode_contains_ansi(self) -> None:
        result = format_apply_summary(ApplyResult(), color=True)
        assert "\x1b[" in result


class TestFormatApplyReport:
    def test_lists_only_unsuccessful_steps(self) -> None:
        result = _result(
            ("network.vpc", Action.CREATE, StepStatus.SUCCESS),
            ("subnetwork.a", Action.CREATE, StepStatus.FAILED),
            ("network.keep", Action.DESTROY, StepStatus.BLOCKED),
        )
        assert format_apply_report(result, color=False).splitlines() == [
            "  subnetwork.a: failed (boom)",
            "  network.keep: blocked",
        ]

    def test_all_successful_is_empty(self) -> None:
        result = _result(("network.vpc", Action.CREATE, StepStatus.SUCCESS))
        assert format_apply_report(result, color=False) == ""


class TestFormatStep:
    def test_create(self) -> None:
        step = _step(
            "subnetwork.primary",
            Action.CREATE,
            reason="not in state",
            planned={"name": "primary", "network": UNKNOWN_TEXT, "private": True},
        )
        result = format_step(step, color=False)
        assert "# subnetwork.primary will be created" in result
        assert "# (not in state)" in result
        assert '+ resource "subnetwork" "primary" {' in result
        assert '+ name    = "primary"' in result
        assert "+ network = (known after apply)" in result
        assert "+ private = true" in result

    def test_update(self) -> None:
        step = _step(
            "subnetwork.primary",
            Action.UPDATE,
            diff={"ip_cidr_range": {"from": "10.0.0.0/20", "to": "10.0.0.0/19"}},
        )
        result = format_step(step, color=False)
        assert "will be updated in-place" in result
        assert '~ ip_cidr_range = "10.0.0.0/20" -> "10.0.0.0/19"' in result

    def test_replace_with_redacted_value(self) -> None:
        step = _step(
            "database_instance.db",
            Action.REPLACE,
            reason="forces replacement: region",
            diff={
                "region": {"from": "us-central1", "to": "europe-west1"},
                "root_password": {"from": REDACTED, "to": REDACTED},
            },
        )
        result = format_step(step, color=False)
        assert "must be replaced" in result
        assert '-/+ region        = "us-central1" -> "europe-west1"' in result
        assert "root_password = (sensitive) -> (sensitive)" in result

    def test_destroy_shows_prior(self) -> None:
        step = _step("network.old", Action.DESTROY, prior={"name": "old-net", "mtu": 1460})
        result = format_step(step, color=False)
        assert "will be destroyed" in result
        assert '- name = "old-net"' in result
        assert "- mtu  = 1460" in result

    def test_blocked(self) -> None:
        step = _step(
            "network.vpc",
            Action.DESTROY,
            reason="removed from configuration; blocked by deletion protection",
            blocked=True,
        )
        result = format_step(step, color=False)
        assert "(BLOCKED: deletion protected)" in result

    def test_deposed_uses_step_key(self) -> None:
        step = _step("network.vpc", Action.DESTROY, deposed=True)
        assert "# network.vpc#deposed will be destroyed" in format_step(step, color=False)

    def test_nested_values_rendered_as_json(self) -> None:
        step = _step(
            "cluster.gke",
            Action.CREATE,
            planned={"labels": {"team": "web"}, "locations": ["a", "b"]},
        )
        result = format_step(step, color=False)
        assert '{"team": "web"}' in result
        assert '["a", "b"]' in result


class TestFormatPlan:
    def test_noop_only(self) -> None:
        plan = Plan(metadata=_META, steps=[_step("network.vpc", Action.NOOP)])
        assert format_plan(plan, color=False) == "No changes. Resources are up-to-date."

    def test_skips_noop_steps(self) -> None:
        plan = Plan(
            metadata=_META,
            steps=[
                _step("network.vpc", Action.NOOP),
                _step("subnetwork.primary", Action.CREATE, planned={"name": "primary"}),
            ],
        )
        result = format_plan(plan, color=False)
        assert "subnetwork.primary" in result
        assert "network.vpc" not in result

    def test_color_mode(self) -> None:
        plan = Plan(
            metadata=_META,
            steps=[_step("subnetwork.primary", Action.CREATE, planned={"name": "primary"})],
        )
        result = format_plan(plan, color=True)
        assert "\x1b[" in result
        assert "will be created" in _strip_ansi(result)


class TestFormatDrift:
    def test_statuses(self) -> None:
        report = DriftReport(
            resources={
                "network.vpc": ResourceDrift(
                    address="network.vpc", resource_type="network", status=DriftStatus.IN_SYNC
                ),
                "subnetwork.primary": ResourceDrift(
                    address="subnetwork.primary",
                    resource_type="subnetwork",
                    status=DriftStatus.DRIFTED,
                    drifted={"ip_cidr_range": {"stored": "10.0.0.0/20", "live": "10.0.0.0/19"}},
                ),
                "router.nat": ResourceDrift(
                    address="router.nat", resource_type="router", status=DriftStatus.MISSING
                ),
                "cluster.gke": ResourceDrift(
                    address="cluster.gke",
                    resource_type="cluster",
                    status=DriftStatus.UNREADABLE,
                    error="permission denied",
                ),
            }
        )
        result = format_drift(report, color=False)
        assert "network.vpc" not in result
        assert "# subnetwork.primary has drifted" in result
        assert '~ ip_cidr_range = "10.0.0.0/20" -> "10.0.0.0/19"' in result
        assert "# router.nat no longer exists" in result
        assert "# cluster.gke could not be read: permission denied" in result
        # Sorted by address.
        assert result.index("cluster.gke") < result.index("router.nat")


class TestFormatOutputs:
    def test_sorted_and_aligned(self) -> None:
        result = format_outputs({"network": "vpc-net", "db_port": 5432})
        assert result.splitlines() == ["db_port = 5432", 'network = "vpc-net"']
