# gitcore/workflow.py
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional
import re
import time as _time

from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from rich import box

from security_rules import RiskLevel, SafetyVerdict, classify, is_reversible
from gitcore.gitease_logging import logger, preview_text
from gitcore.ledger import STATUS_FAILED, STATUS_SUCCESS, UndoLedger
from gitcore.repo import CommandFailed
from gitcore.reversal import GENERIC_RECOVERY_HINT
from gitcore.ui import console, risk_badge

# после этих шагов проверяем конфликты
MERGE_FAMILY_RE = re.compile(r"^git\s+(merge|pull|rebase)\b")

CONFLICT_GUIDANCE = {
    "merge": "After resolving conflicts, run: git add . && git merge --continue",
    "pull": "After resolving conflicts, run: git add . && git merge --continue",
    "rebase": "After resolving conflicts, run: git add . && git rebase --continue",
}

# -------------------- модели --------------------

class StepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


class WorkflowOutcome(str, Enum):
    COMPLETE = "complete"
    PARTIAL = "partial"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class WorkflowStep:
    command: str
    explanation: str = ""
    status: StepStatus = StepStatus.PENDING
    output: Optional[str] = None
    error: Optional[str] = None


@dataclass
class Workflow:
    steps: List[WorkflowStep]
    description: str = ""
    # останов на первом FAIL; других режимов нет
    stop_on_failure: bool = True

    @classmethod
    def from_commands(cls, items: Iterable, description: str = "") -> "Workflow":
        """
        items: пары (command, explanation) или объекты с полями command/explanation.
        """
        steps: List[WorkflowStep] = []
        for item in items:
            if isinstance(item, (tuple, list)):
                command, explanation = (list(item) + [""])[:2]
            else:
                command = getattr(item, "command", "")
                explanation = getattr(item, "explanation", "")
            command = (command or "").strip()
            if not command:
                continue
            steps.append(WorkflowStep(command=command, explanation=(explanation or "").strip()))
        if not steps:
            raise ValueError("Workflow must contain at least one command.")
        return cls(steps=steps, description=description)


@dataclass
class WorkflowSummary:
    outcome: WorkflowOutcome
    succeeded: int
    total: int
    message: str

    @property
    def ok(self) -> bool:
        return self.outcome == WorkflowOutcome.COMPLETE


def summarize(wf: Workflow) -> WorkflowSummary:
    total = len(wf.steps)
    ok = sum(1 for s in wf.steps if s.status == StepStatus.SUCCESS)
    if total and ok == total:
        return WorkflowSummary(WorkflowOutcome.COMPLETE, ok, total, "Workflow completed successfully!")
    if ok > 0:
        return WorkflowSummary(
            WorkflowOutcome.PARTIAL, ok, total,
            f"Workflow partially completed ({ok}/{total} steps succeeded)",
        )
    return WorkflowSummary(WorkflowOutcome.FAILED, 0, total, "Workflow step failed")

# -------------------- превью --------------------

def preview_workflow(wf: Workflow, verdicts: List[SafetyVerdict]) -> None:
    title = escape(wf.description or "Workflow")
    console.print(Panel.fit(f"[bold]{title}[/bold] • {len(wf.steps)} step(s)", border_style="cyan"))

    table = Table(box=box.SIMPLE_HEAVY)
    table.add_column("#", justify="right", style="bold")
    table.add_column("command", style="cyan")
    table.add_column("risk", justify="center")
    table.add_column("explanation")
    for i, (s, v) in enumerate(zip(wf.steps, verdicts), start=1):
        table.add_row(str(i), escape(s.command), risk_badge(v.risk_level), escape(s.explanation))
    console.print(table)

    dangerous = [
        (i, s) for i, (s, v) in enumerate(zip(wf.steps, verdicts), start=1)
        if v.risk_level == RiskLevel.DANGEROUS
    ]
    if dangerous:
        lines = [f"  {i}. {escape(s.command)}" for i, s in dangerous]
        console.print(Panel.fit(
            "[bold]This plan contains dangerous steps that cannot be undone:[/bold]\n" + "\n".join(lines),
            border_style="red", title="⚠️  Dangerous", padding=(1, 2),
        ))

# -------------------- выполнение --------------------

def _skip_remaining(wf: Workflow, after_index: int) -> int:
    """PENDING после шага after_index (1-based) → SKIPPED. Возвращает количество."""
    n = 0
    for s in wf.steps[after_index:]:
        if s.status == StepStatus.PENDING:
            s.status = StepStatus.SKIPPED
            n += 1
    return n


def _handle_conflicts(step: WorkflowStep, repo, prompter) -> bool:
    """
    Проверка конфликтов после merge/pull/rebase.
    True - конфликты были (выполнение надо остановить).
    """
    info = repo.check_conflicts()
    if not info.has_conflicts:
        return False

    files = "\n".join(f"  • {escape(f)}" for f in info.files)
    console.print(Panel.fit(
        f"[bold]Merge conflicts detected![/bold]\n\nConflicting files:\n{files}",
        border_style="red", padding=(1, 2),
    ))

    aborted = False
    if prompter.ask_yes_no("Abort the merge?", default=False):
        aborted = repo.abort_merge()
        if aborted:
            console.print("[green]Merge aborted. The repository is back to its previous state.[/green]")
        else:
            console.print("[red]Could not abort the merge. Resolve the conflicts manually.[/red]")
    if not aborted:
        verb = MERGE_FAMILY_RE.match(step.command).group(1)
        console.print(Panel.fit(
            "Resolve the conflicts in the files above.\n" + CONFLICT_GUIDANCE[verb],
            border_style="yellow", padding=(1, 2),
        ))

    logger.write({
        "kind": "conflict",
        "command": step.command,
        "files": info.files,
        "aborted": aborted,
    })
    return True


def _print_summary(wf: Workflow, summary: WorkflowSummary, started_at: float) -> None:
    counts = {st: sum(1 for s in wf.steps if s.status == st) for st in StepStatus}
    table = Table(title=f"[bold]Workflow: {escape(wf.description or 'plan')}[/bold]")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_row("Total steps", str(summary.total))
    table.add_row("OK", str(counts[StepStatus.SUCCESS]))
    table.add_row("FAIL", str(counts[StepStatus.FAILED]))
    table.add_row("SKIPPED", str(counts[StepStatus.SKIPPED]))
    table.add_row("Duration", f"{_time.time() - started_at:.1f}s")
    console.print()
    console.print(table)

    style = {"complete": "green", "partial": "yellow"}.get(summary.outcome.value, "red")
    console.print(f"[bold {style}]{summary.message}[/bold {style}]")


def run_workflow(wf: Workflow, repo, ledger: UndoLedger, prompter) -> WorkflowSummary:
    """
    Выполняет шаги строго по порядку:
      - одно подтверждение на весь план (отказ → ничего не запускается и не пишется);
      - каждый выполненный шаг пишется в журнал (SKIPPED - нет);
      - FAIL или конфликт после merge/pull/rebase останавливают прогон,
        оставшиеся шаги становятся SKIPPED.
    repo: run_command / check_conflicts / abort_merge.
    prompter: ask_yes_no / ask_text.
    """
    verdicts = [classify(s.command) for s in wf.steps]
    preview_workflow(wf, verdicts)

    if not prompter.ask_yes_no("Run this workflow?", default=False):
        console.print("[dim]Cancelled.[/dim]")
        return WorkflowSummary(WorkflowOutcome.CANCELLED, 0, len(wf.steps), "Cancelled.")

    started_at = _time.time()
    total = len(wf.steps)

    for idx, (step, verdict) in enumerate(zip(wf.steps, verdicts), start=1):
        if step.status != StepStatus.PENDING:
            continue

        console.print(f"[bold]┌ Step {idx}/{total}: {escape(step.command)} ┐[/bold]")
        step.status = StepStatus.RUNNING
        t0 = _time.time()
        failed = False

        try:
            out = repo.run_command(step.command, verdict.risk_level)
        except CommandFailed as e:
            failed = True
            step.status = StepStatus.FAILED
            step.error = e.message
            ledger.append(
                description=step.explanation or wf.description,
                command=step.command,
                status=STATUS_FAILED,
            )
            console.print(f"❌ FAIL • {_time.time() - t0:.1f}s")
            console.print(Panel.fit(Text(step.error or ""), title="[dim]error[/dim]", border_style="red"))
        else:
            step.status = StepStatus.SUCCESS
            step.output = out.text
            ledger.append(
                description=step.explanation or wf.description,
                command=step.command,
                status=STATUS_SUCCESS,
                reversal_command=GENERIC_RECOVERY_HINT if is_reversible(step.command) else None,
            )
            console.print(f"✅ OK • {_time.time() - t0:.1f}s")
            if step.output:
                console.print(Panel.fit(Text(step.output), title="[dim]output[/dim]", border_style="grey50"))

        logger.write({
            "kind": "workflow_step",
            "index": idx,
            "total": total,
            "command": step.command,
            "risk": verdict.risk_level.value,
            "status": step.status.value,
            "output": preview_text(step.output),
            "error": step.error,
        })

        conflicted = False
        if MERGE_FAMILY_RE.match(step.command):
            conflicted = _handle_conflicts(step, repo, prompter)

        if conflicted or (failed and wf.stop_on_failure):
            skipped = _skip_remaining(wf, idx)
            if skipped:
                console.print(f"⏭️  SKIPPED • {skipped} remaining step(s)")
            break

    summary = summarize(wf)
    _print_summary(wf, summary, started_at)
    return summary
