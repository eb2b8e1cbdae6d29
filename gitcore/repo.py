# gitcore/repo.py
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional
import subprocess

from security_rules import RiskLevel
from gitcore.config import limits_for_risk
from gitcore.exec_limits import git_env, run_with_timeout

# статусы porcelain, означающие незавершённое слияние
_CONFLICT_CODES = {"DD", "AU", "UD", "UA", "DU", "AA", "UU"}


class CommandFailed(RuntimeError):
    """Команда завершилась с ненулевым кодом (или по таймауту)."""

    def __init__(self, message: str, exit_code: int = 1, stdout: str = "", stderr: str = ""):
        super().__init__(message)
        self.message = message
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr


@dataclass
class CommandOutput:
    stdout: str
    stderr: str

    @property
    def text(self) -> str:
        # git пишет прогресс и подсказки в stderr - показываем оба потока
        parts = [p.strip() for p in (self.stdout, self.stderr) if p and p.strip()]
        return "\n".join(parts)


@dataclass
class ConflictInfo:
    has_conflicts: bool
    files: List[str] = field(default_factory=list)


@dataclass
class RepoStatus:
    branch: str = ""
    staged: List[str] = field(default_factory=list)
    modified: List[str] = field(default_factory=list)
    untracked: List[str] = field(default_factory=list)
    conflicted: List[str] = field(default_factory=list)

    @property
    def is_clean(self) -> bool:
        return not (self.staged or self.modified or self.untracked or self.conflicted)


def parse_porcelain(text: str) -> RepoStatus:
    """
    Разбор `git status --porcelain=v1`:
      XY <path>            - X индекс, Y рабочее дерево
      R  <old> -> <new>    - берём новое имя
    """
    st = RepoStatus()
    for line in (text or "").splitlines():
        if len(line) < 4:
            continue
        xy, path = line[:2], line[3:]
        if " -> " in path:
            path = path.split(" -> ", 1)[1]
        path = path.strip().strip('"')

        if xy == "??":
            st.untracked.append(path)
            continue
        if xy in _CONFLICT_CODES:
            st.conflicted.append(path)
            continue
        if xy[0] not in (" ", "?"):
            st.staged.append(path)
        if xy[1] in ("M", "D"):
            st.modified.append(path)
    return st


class GitRepository:
    """
    Всё общение с git. Запросы состояния (ветка, статус, списки веток)
    не бросают исключений: при ошибке - пусто/False.
    Бросает только run_command (CommandFailed).
    """

    def __init__(self, cwd: Optional[str] = None):
        self.cwd = cwd

    def _git(self, *args: str) -> subprocess.CompletedProcess:
        return subprocess.run(
            ["git", *args],
            cwd=self.cwd,
            check=False,
            capture_output=True,
            text=True,
            stdin=subprocess.DEVNULL,
            env=git_env(),
        )

    def _git_lines(self, *args: str) -> List[str]:
        try:
            res = self._git(*args)
        except OSError:
            return []
        if res.returncode != 0:
            return []
        return [ln.strip() for ln in res.stdout.splitlines() if ln.strip()]

    # -------------------- запросы --------------------

    def is_repository(self) -> bool:
        try:
            res = self._git("rev-parse", "--is-inside-work-tree")
        except OSError:
            return False
        return res.returncode == 0 and res.stdout.strip() == "true"

    def current_branch(self) -> str:
        lines = self._git_lines("rev-parse", "--abbrev-ref", "HEAD")
        return lines[0] if lines else ""

    def status(self) -> RepoStatus:
        try:
            res = self._git("status", "--porcelain=v1")
        except OSError:
            return RepoStatus()
        if res.returncode != 0:
            return RepoStatus()
        st = parse_porcelain(res.stdout)
        st.branch = self.current_branch()
        return st

    def list_local_branches(self) -> List[str]:
        return self._git_lines("branch", "--format=%(refname:short)")

    def list_remote_branches(self) -> List[str]:
        # origin/HEAD - не ветка, а указатель
        return [
            b for b in self._git_lines("branch", "-r", "--format=%(refname:short)")
            if not b.endswith("/HEAD") and "/" in b
        ]

    def check_conflicts(self) -> ConflictInfo:
        files = self._git_lines("diff", "--name-only", "--diff-filter=U")
        return ConflictInfo(has_conflicts=bool(files), files=files)

    def _rebase_in_progress(self) -> bool:
        for name in ("rebase-merge", "rebase-apply"):
            lines = self._git_lines("rev-parse", "--git-path", name)
            if lines:
                p = Path(lines[0])
                if not p.is_absolute() and self.cwd:
                    p = Path(self.cwd) / p
                if p.exists():
                    return True
        return False

    def abort_merge(self) -> bool:
        """git merge --abort (или rebase --abort, если висит ребейз)."""
        verb = "rebase" if self._rebase_in_progress() else "merge"
        try:
            res = self._git(verb, "--abort")
        except OSError:
            return False
        return res.returncode == 0

    # -------------------- выполнение --------------------

    def run_command(self, command: str, risk: RiskLevel = RiskLevel.SAFE) -> CommandOutput:
        """Синхронно выполняет команду; таймаут берётся из лимитов риска."""
        lim = limits_for_risk(getattr(risk, "value", str(risk)))
        try:
            rr = run_with_timeout(
                command,
                timeout_sec=lim.timeout_sec,
                grace_kill_sec=lim.grace_kill_sec,
                cwd=self.cwd,
                env=git_env(),
            )
        except OSError as e:
            raise CommandFailed(f"cannot start command: {e}", exit_code=127) from e

        if rr.timed_out:
            raise CommandFailed(
                f"Command timed out after {lim.timeout_sec}s",
                exit_code=rr.code, stdout=rr.stdout, stderr=rr.stderr,
            )
        if rr.code != 0:
            message = (rr.stderr or "").strip() or (rr.stdout or "").strip() or f"exit code {rr.code}"
            raise CommandFailed(message, exit_code=rr.code, stdout=rr.stdout, stderr=rr.stderr)
        return CommandOutput(stdout=rr.stdout, stderr=rr.stderr)
