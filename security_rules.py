# security_rules.py

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List


class RiskLevel(str, Enum):
    SAFE = "safe"
    WARNING = "warning"
    DANGEROUS = "dangerous"


# Метки риска для красивого вывода
RISK_LABEL = {
    RiskLevel.SAFE: "safe",
    RiskLevel.WARNING: "warning",
    RiskLevel.DANGEROUS: "dangerous",
}


@dataclass(frozen=True)
class SafetyVerdict:
    risk_level: RiskLevel
    message: str
    reversible: bool
    affected_items: List[str] = field(default_factory=list)


# --- Паттерны ---
# Сравниваем с начала обрезанной строки: "echo git reset --hard" опасным не считается.

# Опасные - необратимо переписывают историю или удаляют содержимое
DANGEROUS_PATTERNS = [
    r"^git\s+reset\s+--hard",
    r"^git\s+push\s+--force",
    r"^git\s+rebase\s+-i",
    r"^git\s+clean\s+-fd",
    r"^git\s+rm\s+-r",
]

DANGEROUS_MESSAGE = "⚠️  This command can irreversibly delete or modify commits"

# Предупреждения - обратимо, но затрагивает remote или историю
WARNING_PATTERNS = [
    (r"^git\s+push", "⚠️  This will push changes to the remote repository"),
    (r"^git\s+rebase", "⚠️  This will rewrite commit history"),
]

SAFE_MESSAGE = "This operation is safe"

# Флаги (-b, -r, --) пропускаем, ищем первый «настоящий» аргумент
_BRANCH_RE = re.compile(r"\b(?:checkout|switch)\s+(?:-\S*\s+)*([^\s-]\S*)")
_FILE_RE = re.compile(r"\b(?:add|rm|checkout)\s+(?:-\S*\s+)*([^\s-]\S*)")


def _match_any(patterns, cmd: str) -> bool:
    for pat in patterns:
        if re.search(pat, cmd, flags=re.IGNORECASE):
            return True
    return False


def extract_affected_items(command: str) -> List[str]:
    """
    Подсказки о затронутых объектах: ветка после checkout/switch
    и путь после add/rm/checkout. Не больше двух, могут отсутствовать.
    """
    items: List[str] = []

    branch = _BRANCH_RE.search(command)
    if branch:
        items.append(f"branch: {branch.group(1)}")

    path = _FILE_RE.search(command)
    if path:
        items.append(f"file: {path.group(1)}")

    return items


def classify(command: str) -> SafetyVerdict:
    """
    Вердикт по первому сработавшему правилу.
    Порядок важен: сначала опасные, потом предупреждения, иначе safe.
    """
    cmd = (command or "").strip()

    # 1) Опасные
    if _match_any(DANGEROUS_PATTERNS, cmd):
        return SafetyVerdict(
            risk_level=RiskLevel.DANGEROUS,
            message=DANGEROUS_MESSAGE,
            reversible=False,
            affected_items=extract_affected_items(cmd),
        )

    # 2) Предупреждения
    for pat, message in WARNING_PATTERNS:
        if re.search(pat, cmd, flags=re.IGNORECASE):
            return SafetyVerdict(
                risk_level=RiskLevel.WARNING,
                message=message,
                reversible=True,
                affected_items=extract_affected_items(cmd),
            )

    # 3) По умолчанию - safe
    return SafetyVerdict(
        risk_level=RiskLevel.SAFE,
        message=SAFE_MESSAGE,
        reversible=True,
        affected_items=[],
    )


def is_reversible(command: str) -> bool:
    """Дешёвая проверка без сборки вердикта: не попадает ли команда в опасные."""
    return not _match_any(DANGEROUS_PATTERNS, (command or "").strip())
