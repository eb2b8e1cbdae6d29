# gitcore/ledger.py
from __future__ import annotations

import json
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from rich.console import Console

from gitcore.config import ledger_path
from gitcore.gitease_logging import logger, now_utc_iso

STATUS_SUCCESS = "success"
STATUS_FAILED = "failed"

_err_console = Console(stderr=True)


@dataclass(frozen=True)
class LedgerEntry:
    id: str
    timestamp: str
    description: str
    command: str
    status: str  # "success" | "failed"
    reversal_command: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        # ключи файла совместимы со старым форматом журнала (camelCase)
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "description": self.description,
            "command": self.command,
            "status": self.status,
            "reversalCommand": self.reversal_command,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LedgerEntry":
        return cls(
            id=str(data.get("id") or ""),
            timestamp=str(data.get("timestamp") or ""),
            description=str(data.get("description") or ""),
            command=str(data.get("command") or ""),
            status=STATUS_FAILED if data.get("status") == STATUS_FAILED else STATUS_SUCCESS,
            reversal_command=data.get("reversalCommand") or None,
        )


def _diagnostic(action: str, path: Path, error: Exception) -> None:
    """Ошибки журнала не пробрасываем: git-команда уже выполнена."""
    logger.write({
        "kind": "ledger_error",
        "action": action,
        "path": str(path),
        "error": f"{type(error).__name__}: {error}",
    })
    _err_console.print(f"[dim]Ledger {action} failed ({path}): {error}[/dim]")


class UndoLedger:
    """
    Журнал выполненных команд (JSON-массив в одном файле).
    Только добавление; undo всегда смотрит на последнюю запись.
    Запись: прочитать весь файл → дописать → атомарно заменить.
    Параллельные процессы не синхронизируются (last write wins).
    """

    def __init__(self, path: Path | str | None = None):
        self.path = Path(path) if path is not None else ledger_path()

    # -------------------- чтение --------------------

    def _load_raw(self) -> List[Dict[str, Any]]:
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except OSError as e:
            _diagnostic("read", self.path, e)
            return []
        except UnicodeDecodeError as e:
            # не UTF-8: считаем журнал битым, как и невалидный JSON
            _diagnostic("parse", self.path, e)
            return []

        if not text.strip():
            return []
        try:
            data = json.loads(text)
        except ValueError as e:
            _diagnostic("parse", self.path, e)
            return []
        if not isinstance(data, list):
            _diagnostic("parse", self.path, ValueError("ledger is not a JSON array"))
            return []
        return [item for item in data if isinstance(item, dict)]

    def read_all(self) -> List[LedgerEntry]:
        """Вся история, старые записи первыми. Нет файла / мусор → []."""
        return [LedgerEntry.from_dict(item) for item in self._load_raw()]

    def last_entry(self) -> Optional[LedgerEntry]:
        entries = self.read_all()
        return entries[-1] if entries else None

    def recent(self, limit: int = 10) -> List[LedgerEntry]:
        """Последние limit записей, новые первыми (для history)."""
        entries = self.read_all()
        if limit <= 0:
            return []
        return list(reversed(entries[-limit:]))

    # -------------------- запись --------------------

    def _next_id(self, raw: List[Dict[str, Any]]) -> str:
        # id = миллисекунды создания; строго растёт даже для записей в одну мс
        now_ms = int(time.time() * 1000)
        if raw:
            try:
                last = int(str(raw[-1].get("id")))
            except (TypeError, ValueError):
                last = 0
            if now_ms <= last:
                now_ms = last + 1
        return str(now_ms)

    def _save(self, raw: List[Dict[str, Any]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(raw, ensure_ascii=False, indent=2), encoding="utf-8")
        os.replace(tmp, self.path)  # атомарная замена (где возможно)

    def append(
        self,
        description: str,
        command: str,
        status: str,
        reversal_command: Optional[str] = None,
    ) -> LedgerEntry:
        """
        Добавляет запись и сохраняет файл. Ошибки сохранения только логируются,
        вызывающий всё равно получает запись.
        """
        raw = self._load_raw()
        entry = LedgerEntry(
            id=self._next_id(raw),
            timestamp=now_utc_iso(),
            description=description,
            command=command,
            status=STATUS_FAILED if status == STATUS_FAILED else STATUS_SUCCESS,
            reversal_command=reversal_command,
        )
        raw.append(entry.to_dict())
        try:
            self._save(raw)
        except OSError as e:
            _diagnostic("write", self.path, e)
        return entry
