# gitcore/config.py
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional
import os
import yaml

_DEFAULT_CONFIG = {
    "ledger_path": "~/.gitease-ledger.json",
    "model": "gpt-4o-mini",
    "provider_timeout_sec": 60,
    # таймауты git-команд по уровню риска
    "limits": {
        "safe": {"timeout_sec": 60, "grace_kill_sec": 3},
        "warning": {"timeout_sec": 120, "grace_kill_sec": 3},
        "dangerous": {"timeout_sec": 120, "grace_kill_sec": 3},
    },
}


@dataclass
class CommandLimits:
    timeout_sec: int
    grace_kill_sec: int


def gitease_home() -> Path:
    """~/.gitease или GITEASE_HOME."""
    raw = os.environ.get("GITEASE_HOME") or "~/.gitease"
    return Path(os.path.expanduser(raw))


def default_config_path() -> Path:
    return gitease_home() / "config.yml"


def _read_yaml(path: Path) -> dict:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            return {}
        return data
    except FileNotFoundError:
        return {}
    except (OSError, yaml.YAMLError):
        # битый конфиг не должен ломать запуск - работаем на дефолтах
        return {}


def load_user_config(path: Optional[str] = None) -> dict:
    """Дефолты, поверх которых накатан пользовательский config.yml."""
    data = _read_yaml(Path(path) if path else default_config_path())
    out = dict(_DEFAULT_CONFIG)
    for key, value in data.items():
        if key == "limits":
            if not isinstance(value, dict):
                # limits: 5 и т.п. - игнорируем, как и битый файл
                continue
            merged = {k: dict(v) for k, v in _DEFAULT_CONFIG["limits"].items()}
            for risk, item in value.items():
                if isinstance(item, dict):
                    merged.setdefault(risk, {}).update(item)
            out["limits"] = merged
        else:
            out[key] = value
    return out


def ledger_path(path: Optional[str] = None) -> Path:
    raw = os.environ.get("GITEASE_LEDGER") or load_user_config(path).get("ledger_path")
    return Path(os.path.expanduser(str(raw or _DEFAULT_CONFIG["ledger_path"])))


def model_name(path: Optional[str] = None) -> str:
    return os.environ.get("GITEASE_MODEL") or str(load_user_config(path).get("model") or _DEFAULT_CONFIG["model"])


def provider_timeout(path: Optional[str] = None) -> float:
    try:
        return float(load_user_config(path).get("provider_timeout_sec") or 60)
    except (TypeError, ValueError):
        return 60.0


def limits_for_risk(risk: str, path: Optional[str] = None) -> CommandLimits:
    """
    Лимиты для 'safe' | 'warning' | 'dangerous'.
    Неизвестный уровень получает лимиты 'safe'.
    """
    limits = load_user_config(path).get("limits") or {}
    d = limits.get(risk) or limits.get("safe")
    if not isinstance(d, dict):
        d = _DEFAULT_CONFIG["limits"]["safe"]
    try:
        return CommandLimits(
            timeout_sec=int(d.get("timeout_sec", 60)),
            grace_kill_sec=int(d.get("grace_kill_sec", 3)),
        )
    except (TypeError, ValueError):
        return CommandLimits(timeout_sec=60, grace_kill_sec=3)
