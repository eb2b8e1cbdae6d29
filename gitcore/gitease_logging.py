# gitcore/gitease_logging.py
from __future__ import annotations
import json, re, io
from pathlib import Path
from datetime import datetime, timezone
from typing import Any, Dict

from gitcore.config import gitease_home


def _logs_dir() -> Path:
    base = gitease_home() / "logs"
    base.mkdir(parents=True, exist_ok=True)
    return base

_SECRET_PATTERNS = [
    re.compile(r"sk-[A-Za-z0-9_\-]{20,}"),            # ключи OpenAI
    re.compile(r"gh[pousr]_[A-Za-z0-9]{20,}"),        # токены GitHub
    re.compile(r"(?i)api[_-]?key\s*[:=]\s*([^\s\"']+)"),
    re.compile(r"(?i)authorization:\s*bearer\s+[^\s]+"),
    re.compile(r"https://[^\s:@/]+:[^\s@/]+@"),       # креды в URL remote
]

def now_utc_iso() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")

def mask_string(s: str) -> str:
    masked = s
    for pat in _SECRET_PATTERNS:
        masked = pat.sub("***", masked)
    return masked

def _mask_obj(obj: Any) -> Any:
    if isinstance(obj, dict):
        return {k: _mask_obj(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_mask_obj(v) for v in obj]
    if isinstance(obj, bytes):
        obj = obj.decode("utf-8", "replace")
    if isinstance(obj, str):
        return mask_string(obj)
    return obj

def preview_text(s: str | None, limit: int = 4096) -> str:
    """Обрезает вывод git до разумного размера, чтобы не раздувать лог."""
    if not s:
        return ""
    if len(s) > limit:
        return s[:limit] + f"\n...[truncated {len(s)-limit} chars]"
    return s

class JsonlLogger:
    """События в logs/YYYY-MM-DD.jsonl с маскированием секретов."""
    def __init__(self, dirpath: Path | None = None):
        self._dir = dirpath

    @property
    def dir(self) -> Path:
        # каталог берём лениво: GITEASE_HOME может смениться после импорта
        return self._dir or _logs_dir()

    def write(self, event: Dict[str, Any]) -> None:
        event = dict(event)
        event.setdefault("ts", now_utc_iso())
        safe = _mask_obj(event)
        date = event["ts"][:10]  # YYYY-MM-DD
        try:
            path = self.dir / f"{date}.jsonl"
            with io.open(path, "a", encoding="utf-8") as f:
                f.write(json.dumps(safe, ensure_ascii=False) + "\n")
        except OSError:
            # лог - вспомогательный канал, из-за него команда падать не должна
            pass

logger = JsonlLogger()
