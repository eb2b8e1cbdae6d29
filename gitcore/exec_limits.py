# gitcore/exec_limits.py
"""
Запуск git-команд без интерактива и с таймаутом по уровню риска.

git на не-tty не должен ждать редактор, пароль или пейджер: окружение
подменяется так, что такие места либо проходят молча, либо сразу падают.
"""
from __future__ import annotations

import contextlib
import os
import signal
import subprocess
import tempfile
import time
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional

import psutil

NONINTERACTIVE_GIT_ENV = {
    "GIT_TERMINAL_PROMPT": "0",     # логин/пароль не спрашиваем
    "GIT_EDITOR": "true",           # commit без -m падает с «empty commit message»
    "GIT_SEQUENCE_EDITOR": "true",  # rebase -i берёт todo как есть
    "GIT_MERGE_AUTOEDIT": "no",
    "GIT_PAGER": "cat",
}


@dataclass
class RunResult:
    code: int
    stdout: str
    stderr: str
    duration_sec: float
    timed_out: bool = False


def git_env(base: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    """Окружение процесса (или base) + запрет интерактива git/ssh."""
    env = dict(os.environ if base is None else base)
    env.update(NONINTERACTIVE_GIT_ENV)
    # ssh по ключу без вопросов про passphrase/known_hosts; свой GIT_SSH_COMMAND не трогаем
    env.setdefault("GIT_SSH_COMMAND", "ssh -o BatchMode=yes")
    return env


def _signal_session(proc: subprocess.Popen, children: List[psutil.Process], sig: int) -> None:
    # start_new_session: pgid == pid шелла
    try:
        os.killpg(proc.pid, sig)
        return
    except (ProcessLookupError, PermissionError):
        pass
    for ch in children:
        with contextlib.suppress(psutil.Error):
            ch.send_signal(sig)
    with contextlib.suppress(ProcessLookupError):
        proc.send_signal(sig)


def _kill_session(proc: subprocess.Popen, grace_sec: float) -> None:
    """SIGTERM всей сессии; кто не вышел за grace_sec - SIGKILL."""
    try:
        children = psutil.Process(proc.pid).children(recursive=True)
    except psutil.Error:
        children = []

    _signal_session(proc, children, signal.SIGTERM)
    try:
        proc.wait(timeout=grace_sec)
    except subprocess.TimeoutExpired:
        _signal_session(proc, children, signal.SIGKILL)
        proc.wait()

    # потомки, пережившие шелл (ssh от git fetch и т.п.)
    _, alive = psutil.wait_procs(children, timeout=grace_sec)
    for ch in alive:
        with contextlib.suppress(psutil.Error):
            ch.kill()


def run_with_timeout(
    command: str,
    *,
    timeout_sec: float,
    grace_kill_sec: float,
    cwd: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
) -> RunResult:
    """
    command выполняется через shell в отдельной сессии.
    env=None - git_env() от текущего окружения.
    Вывод копится во временных файлах: fetch/clone пишут много прогресса в stderr.
    """
    started = time.monotonic()
    timed_out = False

    with tempfile.TemporaryFile() as out, tempfile.TemporaryFile() as err:
        proc = subprocess.Popen(
            command,
            shell=True,
            cwd=cwd,
            env=git_env() if env is None else dict(env),
            stdin=subprocess.DEVNULL,
            stdout=out,
            stderr=err,
            start_new_session=True,
        )
        try:
            proc.wait(timeout=timeout_sec)
        except subprocess.TimeoutExpired:
            timed_out = True
            _kill_session(proc, grace_kill_sec)

        out.seek(0)
        err.seek(0)
        stdout = out.read().decode(errors="replace")
        stderr = err.read().decode(errors="replace")

    return RunResult(
        code=proc.returncode if proc.returncode is not None else -signal.SIGKILL,
        stdout=stdout,
        stderr=stderr,
        duration_sec=round(time.monotonic() - started, 3),
        timed_out=timed_out,
    )
