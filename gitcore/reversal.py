# gitcore/reversal.py
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Tuple
import re
import shlex

from gitcore.ledger import LedgerEntry, STATUS_FAILED

# (подстрока выполненной команды, команда-откат); первое совпадение выигрывает
REVERSAL_RULES: List[Tuple[str, str]] = [
    ("git reset --soft HEAD~", "git commit"),
    ("git reset HEAD", "git add"),
    ("git revert", "git reset --hard"),
]

# когда конкретного отката нет - отправляем смотреть историю HEAD
GENERIC_RECOVERY_HINT = "git reflog"

_PUSH_RE = re.compile(r"^git\s+push\b")


def resolve_reversal(command: str) -> Optional[str]:
    """
    Откат по таблице REVERSAL_RULES: простое вхождение подстроки,
    без разбора смысла команды. None - если ничего не подошло.
    """
    for trigger, reversal in REVERSAL_RULES:
        if trigger in (command or ""):
            return reversal
    return None


# -------------------- стратегия undo по последней записи --------------------

def _undo_add(m: re.Match) -> str:
    paths = m.group(1).strip()
    if paths in (".", "-A", "--all"):
        return "git reset HEAD"
    return f"git reset HEAD -- {paths}"

def _undo_branch(m: re.Match) -> str:
    return f"git branch -d {shlex.quote(m.group(1))}"

def _undo_tag(m: re.Match) -> str:
    return f"git tag -d {shlex.quote(m.group(1))}"

# порядок важен: более узкие шаблоны раньше широких
_UNDO_PATTERNS = [
    (re.compile(r"^git\s+commit\b(?!.*--amend)"), lambda m: "git reset --soft HEAD~1"),
    (re.compile(r"^git\s+add\s+(.+)$"), _undo_add),
    (re.compile(r"^git\s+(?:checkout|switch)\s+-[bc]\s+\S+"), lambda m: "git switch -"),
    (re.compile(r"^git\s+(?:checkout|switch)\s+[^\s-]\S*$"), lambda m: "git switch -"),
    (re.compile(r"^git\s+(?:merge|pull)\b"), lambda m: "git reset --merge ORIG_HEAD"),
    (re.compile(r"^git\s+stash(?:\s+(?:push|save)\b.*)?$"), lambda m: "git stash pop"),
    (re.compile(r"^git\s+branch\s+([^\s-]\S*)$"), _undo_branch),
    (re.compile(r"^git\s+tag\s+([^\s-]\S*)$"), _undo_tag),
]


@dataclass
class UndoPlan:
    command: Optional[str]
    reason: str
    hint: str = GENERIC_RECOVERY_HINT

    @property
    def possible(self) -> bool:
        return bool(self.command)


def plan_undo(entry: Optional[LedgerEntry]) -> UndoPlan:
    """
    Что предложить для отката последней записи журнала:
      1) нечего/нельзя откатывать: пусто, запись failed, push;
      2) известный шаблон команды;
      3) таблица REVERSAL_RULES;
      4) reversal_command, сохранённый при записи.
    """
    if entry is None:
        return UndoPlan(command=None, reason="Nothing to undo: the ledger is empty.")

    if entry.status == STATUS_FAILED:
        return UndoPlan(
            command=None,
            reason=f"The last command failed, so there is nothing to undo: {entry.command}",
        )

    cmd = (entry.command or "").strip()

    if _PUSH_RE.search(cmd):
        return UndoPlan(
            command=None,
            reason="Pushed changes cannot be undone safely from here. "
                   "Consider git revert <commit> and pushing the revert instead.",
        )

    for rx, build in _UNDO_PATTERNS:
        m = rx.search(cmd)
        if m:
            return UndoPlan(command=build(m), reason=f"Reverses: {cmd}")

    reversal = resolve_reversal(cmd)
    if reversal:
        return UndoPlan(command=reversal, reason=f"Reverses: {cmd}")

    if entry.reversal_command:
        return UndoPlan(command=entry.reversal_command, reason=f"Recorded reversal for: {cmd}")

    return UndoPlan(
        command=None,
        reason=f"No automatic undo is known for: {cmd}",
    )
