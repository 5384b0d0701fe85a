"""Repair orchestrator: plans and applies fixes, phase by phase."""

from __future__ import annotations

import logging
import os
import threading
import time
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path

from codesigma.core.config import resolve_parallelism
from codesigma.core.errors import EnvironmentFatal, FixerFailure
from codesigma.core.models import Issue, RepairOutcome, RepairReport, RepairStep, RunState
from codesigma.fix.applier import FixApplier
from codesigma.fix.fixers import (
    FixContext,
    Fixer,
    FixerRegistry,
    FixOutcome,
    FixPhase,
    default_registry,
)

logger = logging.getLogger(__name__)

# Re-evaluates one file (by relative path) after repair
ConfirmFn = Callable[[str], list[Issue]]

NO_FIXER = "no fixer registered"
RUN_ABORTED = "run aborted"

_TRANSITIONS: dict[RunState, set[RunState]] = {
    RunState.PLANNED: {RunState.RUNNING},
    RunState.RUNNING: {RunState.COMPLETED, RunState.ABORTED},
    RunState.COMPLETED: set(),
    RunState.ABORTED: set(),
}


def transition(report: RepairReport, new_state: RunState) -> None:
    """Move *report* to *new_state*, rejecting anything off the state machine."""
    if new_state not in _TRANSITIONS[report.state]:
        raise ValueError(
            f"Illegal repair state transition {report.state.value} -> {new_state.value}"
        )
    report.state = new_state


@dataclass(frozen=True)
class PlannedStep:
    index: int
    issue: Issue
    fixer: Fixer | None


@dataclass
class RepairPlan:
    """Issues paired with their fixers, in input order."""

    steps: list[PlannedStep] = field(default_factory=list)

    @property
    def actionable(self) -> list[PlannedStep]:
        return [s for s in self.steps if s.fixer is not None]

    @property
    def unresolved(self) -> list[PlannedStep]:
        return [s for s in self.steps if s.fixer is None]

    def phases(self) -> list[tuple[FixPhase, dict[str, list[PlannedStep]]]]:
        """Actionable steps grouped by phase, then by target.

        Phases are in priority order. Steps within a target are ordered by
        line, then input order.
        """
        grouped: dict[FixPhase, dict[str, list[PlannedStep]]] = {}
        for step in self.actionable:
            targets = grouped.setdefault(step.fixer.phase, {})
            targets.setdefault(step.fixer.target(step.issue), []).append(step)
        for targets in grouped.values():
            for steps in targets.values():
                steps.sort(key=lambda s: (s.issue.line, s.index))
        return sorted(grouped.items(), key=lambda item: item[0])


class RepairOrchestrator:
    """Applies registered fixers to issues and accounts for every step."""

    def __init__(
        self,
        project_path: Path,
        registry: FixerRegistry | None = None,
        applier: FixApplier | None = None,
        confirm: ConfirmFn | None = None,
        workers: int | str | None = None,
        backup: bool = True,
    ):
        self.project_path = Path(project_path)
        self.registry = registry or default_registry()
        self.applier = applier or FixApplier(self.project_path, backup=backup)
        self.confirm = confirm
        self.workers = resolve_parallelism(workers)
        self._lock = threading.Lock()

    def plan(self, issues: Iterable[Issue]) -> RepairPlan:
        return RepairPlan([
            PlannedStep(index=i, issue=issue, fixer=self.registry.resolve(issue))
            for i, issue in enumerate(issues)
        ])

    def run(
        self,
        issues_or_plan: RepairPlan | Iterable[Issue],
        dry_run: bool = False,
    ) -> RepairReport:
        """Execute a plan. Never raises for per-step failures."""
        plan = (
            issues_or_plan if isinstance(issues_or_plan, RepairPlan)
            else self.plan(issues_or_plan)
        )
        started = time.monotonic()
        report = RepairReport(session=self.applier.session)
        transition(report, RunState.RUNNING)

        recorded: dict[int, RepairStep] = {}
        touched: set[str] = set()
        for step in plan.unresolved:
            recorded[step.index] = RepairStep(
                issue=step.issue, fixer_id="", outcome=RepairOutcome.SKIPPED, message=NO_FIXER,
            )

        try:
            self._precheck()
            for phase, targets in plan.phases():
                logger.debug("Phase %s: %d target(s)", phase.name, len(targets))
                self._run_phase(targets, recorded, touched, dry_run)
        except EnvironmentFatal as exc:
            logger.error("Repair aborted: %s", exc)
            report.fatal_error = str(exc)
            for step in plan.steps:
                if step.index not in recorded:
                    recorded[step.index] = RepairStep(
                        issue=step.issue,
                        fixer_id=step.fixer.fixer_id if step.fixer else "",
                        outcome=RepairOutcome.SKIPPED,
                        message=RUN_ABORTED,
                    )
            transition(report, RunState.ABORTED)
        else:
            transition(report, RunState.COMPLETED)

        report.touched_files = sorted(touched)

        steps = [recorded[s.index] for s in plan.steps]
        if self.confirm is not None and not dry_run and report.state == RunState.COMPLETED:
            steps = self._confirm(steps, report.touched_files)
        report.steps = steps
        report.duration = time.monotonic() - started

        logger.info(
            "Repair %s: %d succeeded, %d failed, %d skipped",
            report.state.value, report.success_count, report.failure_count, report.skipped_count,
        )
        return report

    def _precheck(self) -> None:
        if not self.project_path.is_dir():
            raise EnvironmentFatal(f"Project path is not a directory: {self.project_path}")
        if not os.access(self.project_path, os.W_OK):
            raise EnvironmentFatal(f"Project path is not writable: {self.project_path}")

    def _run_phase(
        self,
        targets: dict[str, list[PlannedStep]],
        recorded: dict[int, RepairStep],
        touched: set[str],
        dry_run: bool,
    ) -> None:
        """Run per-file groups concurrently, then each batch group on its own.

        A batch fixer may rewrite any file in the tree, so it never overlaps
        another group of the same phase.
        """
        exclusive = [steps for steps in targets.values() if any(s.fixer.batch for s in steps)]
        shared = [steps for steps in targets.values() if not any(s.fixer.batch for s in steps)]

        fatal: EnvironmentFatal | None = None
        with ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="codesigma-fix") as pool:
            futures = [
                pool.submit(self._run_group, steps, recorded, touched, dry_run)
                for steps in shared
            ]
            for future in futures:
                try:
                    future.result()
                except EnvironmentFatal as exc:
                    fatal = fatal or exc
        if fatal is not None:
            raise fatal

        for steps in exclusive:
            self._run_group(steps, recorded, touched, dry_run)

    def _run_group(
        self,
        steps: list[PlannedStep],
        recorded: dict[int, RepairStep],
        touched: set[str],
        dry_run: bool,
    ) -> None:
        batched: dict[str, FixOutcome] = {}
        for planned in steps:
            fixer = planned.fixer
            if fixer.batch and fixer.fixer_id in batched:
                outcome = batched[fixer.fixer_id]
            else:
                outcome = self._execute(planned, dry_run)
                if fixer.batch:
                    batched[fixer.fixer_id] = outcome
            with self._lock:
                recorded[planned.index] = RepairStep(
                    issue=planned.issue,
                    fixer_id=fixer.fixer_id,
                    outcome=outcome.outcome,
                    message=outcome.message,
                )
                touched.update(outcome.touched)

    def _execute(self, planned: PlannedStep, dry_run: bool) -> FixOutcome:
        fixer = planned.fixer
        if dry_run:
            return FixOutcome(RepairOutcome.SKIPPED, f"dry run: would apply {fixer.fixer_id}")
        context = FixContext(self.project_path, self.applier)
        try:
            return fixer.apply(planned.issue, context)
        except EnvironmentFatal:
            raise
        except Exception as exc:
            failure = exc if isinstance(exc, FixerFailure) else FixerFailure(
                fixer.fixer_id, f"{type(exc).__name__}: {exc}"
            )
            logger.warning("Fixer failed on %s: %s", planned.issue.path, failure)
            return FixOutcome(RepairOutcome.FAILED, str(failure))

    def _confirm(self, steps: list[RepairStep], touched: list[str]) -> list[RepairStep]:
        """Mark successful steps resolved or not by re-analyzing touched files."""
        remaining: dict[str, list[Issue]] = {}
        for path in touched:
            try:
                remaining[path] = self.confirm(path)
            except Exception as exc:
                logger.warning("Could not re-analyze %s: %s", path, exc)

        confirmed = []
        for step in steps:
            issues = remaining.get(step.issue.path)
            if step.outcome != RepairOutcome.SUCCESS or issues is None:
                confirmed.append(step)
                continue
            still_there = any(
                i.check_id == step.issue.check_id
                and (step.issue.is_file_level or i.line == step.issue.line)
                for i in issues
            )
            confirmed.append(RepairStep(
                issue=step.issue,
                fixer_id=step.fixer_id,
                outcome=step.outcome,
                message=step.message,
                resolved=not still_there,
            ))
        return confirmed
