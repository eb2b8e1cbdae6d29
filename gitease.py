# gitease.py - git-команды обычным языком: подсказка → риск → подтверждение → журнал

import re
import shlex
import sys

from rich import print
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from security_rules import classify, is_reversible
from gitease_brain import ProviderError, looks_like_workflow, plan_workflow, suggest
from gitcore.gitease_logging import logger, preview_text
from gitcore.ledger import STATUS_FAILED, STATUS_SUCCESS, UndoLedger
from gitcore.repo import CommandFailed, GitRepository
from gitcore.reversal import GENERIC_RECOVERY_HINT, plan_undo, resolve_reversal
from gitcore.ui import AutoConfirmPrompter, RichPrompter, print_command_panel
from gitcore.workflow import MERGE_FAMILY_RE, CONFLICT_GUIDANCE, Workflow, WorkflowOutcome, run_workflow

_COMMIT_RE = re.compile(r"^git\s+commit\b")
# с этими опциями сообщение уже задано (или берётся из существующего коммита)
_MESSAGE_OPTIONS = {
    "-m", "--message", "-F", "--file", "-C", "--reuse-message",
    "--amend", "--no-edit", "--fixup", "--squash",
}


def _error(msg: str, hint: str | None = None) -> None:
    body = f"[bold red]{escape(msg)}[/bold red]"
    if hint:
        body += f"\n\n[yellow]💡 {escape(hint)}[/yellow]"
    print(Panel.fit(body, border_style="red", padding=(1, 2)))


def _require_repo(repo: GitRepository) -> bool:
    if repo.is_repository():
        return True
    _error("Error: Not a Git repository", "Navigate to a Git repository first")
    return False


# =====================================================
# Одиночная команда
# =====================================================
def _has_commit_message(command: str) -> bool:
    try:
        tokens = shlex.split(command)[2:]
    except ValueError:
        tokens = command.split()[2:]
    for tok in tokens:
        if tok == "--":
            break
        if tok.split("=", 1)[0] in _MESSAGE_OPTIONS:
            return True
        # склеенные короткие флаги: -am, -m"wip", -Fmsg.txt
        if tok.startswith("-") and not tok.startswith("--") and any(c in "mFC" for c in tok[1:]):
            return True
    return False


def _prepare_commit(command: str, repo: GitRepository, ledger: UndoLedger, prompter) -> str | None:
    """
    git commit без staged-изменений / без сообщения:
    предлагаем `git add -A`, спрашиваем сообщение. None - коммитить нечего/отмена.
    """
    st = repo.status()
    # --amend может менять только сообщение
    if not st.staged and "--amend" not in command.split():
        if not (st.modified or st.untracked):
            print("[yellow]No changes to commit.[/yellow]")
            return None
        if not prompter.ask_yes_no("No staged changes. Stage all and continue?", default=False):
            print("[dim]Cancelled.[/dim]")
            return None
        if not _execute("git add -A", "stage all changes before commit", repo, ledger):
            return None

    if not _has_commit_message(command):
        message = prompter.ask_text("Commit message").strip()
        if not message:
            print("[dim]Cancelled: empty commit message.[/dim]")
            return None
        command = f"{command} -m {shlex.quote(message)}"
    return command


def _execute(command: str, description: str, repo: GitRepository, ledger: UndoLedger) -> bool:
    """Запуск + запись в журнал + итог пользователю."""
    verdict = classify(command)
    print("[blue]Executing...[/blue]")
    try:
        out = repo.run_command(command, verdict.risk_level)
    except CommandFailed as e:
        ledger.append(description=description, command=command, status=STATUS_FAILED)
        logger.write({"kind": "executed", "command": command, "ok": False, "error": e.message})
        print(Panel.fit(Text(e.message), title="Command failed", border_style="red", padding=(1, 2)))
        _report_conflicts(command, repo)
        return False

    ledger.append(
        description=description,
        command=command,
        status=STATUS_SUCCESS,
        reversal_command=resolve_reversal(command),
    )
    logger.write({"kind": "executed", "command": command, "ok": True, "output": preview_text(out.text)})
    print(Panel.fit(Text(out.text or "Done."), title="✅ Done", border_style="green", padding=(1, 2)))
    _report_conflicts(command, repo)
    return True


def _report_conflicts(command: str, repo: GitRepository) -> None:
    m = MERGE_FAMILY_RE.match(command)
    if not m:
        return
    info = repo.check_conflicts()
    if not info.has_conflicts:
        return
    verb = m.group(1)
    abort_verb = "rebase" if verb == "rebase" else "merge"
    files = "\n".join(f"  • {escape(f)}" for f in info.files)
    print(Panel.fit(
        f"[bold]Merge conflicts detected![/bold]\n\nConflicting files:\n{files}\n\n"
        f"{CONFLICT_GUIDANCE[verb]}\nOr abort with: git {abort_verb} --abort",
        border_style="red", padding=(1, 2),
    ))


def run_single(command: str, explanation: str, description: str, repo: GitRepository, ledger: UndoLedger, prompter,
               title: str = "Suggested command") -> int:
    verdict = classify(command)
    print_command_panel(command, explanation, verdict, title=title)

    if _COMMIT_RE.match(command):
        prepared = _prepare_commit(command, repo, ledger, prompter)
        if prepared is None:
            return 0
        command = prepared

    if not prompter.ask_yes_no("Run this command?", default=False):
        print("[dim]Cancelled.[/dim]")
        return 0

    # необратимые команды - второе подтверждение
    if not is_reversible(command):
        if not prompter.ask_yes_no("[bold red]This cannot be undone. Are you absolutely sure?[/bold red]", default=False):
            print("[dim]Cancelled.[/dim]")
            return 0

    return 0 if _execute(command, description, repo, ledger) else 1


# =====================================================
# Запрос на естественном языке
# =====================================================
def handle_query(query: str, prompter, force_workflow: bool = False) -> int:
    repo = GitRepository()
    if not _require_repo(repo):
        return 1

    branch = repo.current_branch()
    print(f"[green]Git repository detected (branch: {escape(branch or 'unknown')})[/green]")
    print(f"[blue]You asked:[/blue] [bold]{escape(query)}[/bold]")

    ledger = UndoLedger()

    if force_workflow or looks_like_workflow(query):
        print("[cyan]Multi-step workflow detected[/cyan]")
        print("[dim]Asking for a workflow plan...[/dim]")
        try:
            plan = plan_workflow(query)
        except ProviderError as e:
            _error(str(e), "Check OPENAI_API_KEY in .env and your network connection, then try again.")
            return 1
        logger.write({
            "kind": "workflow_plan",
            "user_input": query,
            "description": plan.description,
            "steps": [s.command for s in plan.steps],
        })
        wf = Workflow.from_commands(plan.steps, description=plan.description)
        summary = run_workflow(wf, repo, ledger, prompter)
        return 0 if summary.outcome in (WorkflowOutcome.COMPLETE, WorkflowOutcome.CANCELLED) else 1

    print("[dim]Asking for suggestions...[/dim]")
    try:
        s = suggest(query)
    except ProviderError as e:
        _error(str(e), "Check OPENAI_API_KEY in .env and your network connection, then try again.")
        return 1
    logger.write({"kind": "suggestion", "user_input": query, "command": s.command, "explanation": s.explanation})
    return run_single(s.command, s.explanation, query, repo, ledger, prompter)


# =====================================================
# status / history / undo
# =====================================================
def print_status() -> int:
    repo = GitRepository()
    if not _require_repo(repo):
        return 1

    st = repo.status()
    local = repo.list_local_branches()
    remote = repo.list_remote_branches()

    t = Table(title="📊 Repository status", show_lines=False)
    t.add_column("Metric")
    t.add_column("Value", justify="right")
    t.add_row("Branch", escape(st.branch or "unknown"))
    t.add_row("Staged", str(len(st.staged)))
    t.add_row("Modified", str(len(st.modified)))
    t.add_row("Untracked", str(len(st.untracked)))
    t.add_row("Conflicted", str(len(st.conflicted)))
    t.add_row("Local branches", str(len(local)))
    t.add_row("Remote branches", str(len(remote)))
    print(t)

    if st.modified:
        print("[yellow]Modified files:[/yellow]")
        for f in st.modified:
            print(f"  - {escape(f)}")
    if st.conflicted:
        print("[red]Conflicting files:[/red]")
        for f in st.conflicted:
            print(f"  - {escape(f)}")
    return 0


def print_history(limit: int = 10) -> int:
    rows = UndoLedger().recent(limit)
    if not rows:
        print("[yellow]History is empty.[/yellow]")
        return 0
    t = Table(title=f"Last {limit} commands", show_lines=False)
    t.add_column("ID", justify="right")
    t.add_column("Time (UTC)")
    t.add_column("Status")
    t.add_column("Command")
    t.add_column("Description")
    t.add_column("Reversal")
    for r in rows:
        status = "[green]success[/green]" if r.status == STATUS_SUCCESS else "[red]failed[/red]"
        t.add_row(
            r.id, r.timestamp, status,
            escape(r.command[:50]),
            escape((r.description or "")[:40]),
            escape(r.reversal_command or "-"),
        )
    print(t)
    return 0


def run_undo(prompter) -> int:
    repo = GitRepository()
    if not _require_repo(repo):
        return 1

    ledger = UndoLedger()
    last = ledger.last_entry()
    plan = plan_undo(last)
    logger.write({
        "kind": "undo",
        "last_command": last.command if last else None,
        "undo_command": plan.command,
        "reason": plan.reason,
    })

    if last is not None:
        print(Panel.fit(
            f"[bold]Last command:[/bold] [cyan]{escape(last.command)}[/cyan]\n"
            f"[bold]When (UTC):[/bold] {last.timestamp}   [bold]Status:[/bold] {last.status}",
            border_style="blue", padding=(1, 2),
        ))

    if not plan.possible:
        print(Panel.fit(
            f"{escape(plan.reason)}\n\n[dim]To inspect recent history, run: {escape(plan.hint)}[/dim]",
            border_style="yellow", padding=(1, 2),
        ))
        return 0 if last is None or last.status == STATUS_SUCCESS else 1

    return run_single(plan.command, plan.reason, f"undo: {last.command}", repo, ledger, prompter, title="Undo")


def print_help() -> None:
    t = Table(title="📖 gitease", show_lines=False)
    t.add_column("Command", style="bold")
    t.add_column("Description")
    t.add_row('gitease "<request>"', "Suggest a git command (or a multi-step plan) and run it after confirmation")
    t.add_row('gitease "<request>" --workflow', "Always plan a multi-step workflow")
    t.add_row("gitease status", "Branch, staged/modified/untracked files, branch counts")
    t.add_row(escape("gitease history [N]"), "Last N commands from the undo ledger (default 10)")
    t.add_row("gitease undo", "Suggest and run the reversal of the last command")
    t.add_row("--yes", "Answer yes to every confirmation")
    t.add_row("", f"If nothing else helps: {GENERIC_RECOVERY_HINT}")
    print(t)


def cli_entry():
    args = sys.argv[1:]
    auto_yes = "--yes" in args or "-y" in args
    force_workflow = "--workflow" in args
    args = [a for a in args if a not in ("--yes", "-y", "--workflow")]
    prompter = AutoConfirmPrompter() if auto_yes else RichPrompter()

    if args and args[0] in ("help", "-h", "--help"):
        print_help()
        return

    if args and args[0] == "status":
        sys.exit(print_status())

    if args and args[0] == "history":
        limit = 10
        if len(args) > 1:
            try:
                limit = int(args[1])
            except ValueError:
                print("[red]Usage: gitease history " + escape("[N]") + "[/red]")
                sys.exit(1)
        sys.exit(print_history(limit))

    if args and args[0] == "undo":
        sys.exit(run_undo(prompter))

    query = " ".join(args).strip()
    if not query:
        print("[red]Error: Please provide a valid query[/red]")
        print("[yellow]\nExample:[/yellow]")
        print('[dim]  gitease "undo my last commit"[/dim]')
        sys.exit(1)

    sys.exit(handle_query(query, prompter, force_workflow=force_workflow))


if __name__ == "__main__":
    cli_entry()
