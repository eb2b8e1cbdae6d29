# gitcore/ui.py
from __future__ import annotations

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Confirm, Prompt

from security_rules import RISK_LABEL, RiskLevel, SafetyVerdict

console = Console()

_BADGE_STYLE = {
    RiskLevel.SAFE: "black on green",
    RiskLevel.WARNING: "black on yellow",
    RiskLevel.DANGEROUS: "white on red",
}

_BORDER = {
    RiskLevel.SAFE: "green",
    RiskLevel.WARNING: "yellow",
    RiskLevel.DANGEROUS: "red",
}


def risk_badge(level: RiskLevel) -> str:
    label = RISK_LABEL.get(level, str(level)).upper()
    return f"[{_BADGE_STYLE.get(level, 'bold')}] {label} [/]"


def risk_border(level: RiskLevel) -> str:
    return _BORDER.get(level, "white")


def print_command_panel(command: str, explanation: str, verdict: SafetyVerdict, title: str = "Suggested command") -> None:
    lines = [
        f"[bold cyan]$ {escape(command)}[/bold cyan]",
        "",
        escape(explanation or ""),
        "",
        f"{risk_badge(verdict.risk_level)} {verdict.message}",
    ]
    if verdict.affected_items:
        lines.append("[dim]Affected: " + escape(", ".join(verdict.affected_items)) + "[/dim]")
    if not verdict.reversible:
        lines.append("[bold red]This command cannot be undone with gitease undo.[/bold red]")
    console.print(Panel.fit("\n".join(lines), title=title, border_style=risk_border(verdict.risk_level), padding=(1, 2)))


# -------------------- подтверждения --------------------

class RichPrompter:
    """Интерактивные вопросы через rich.prompt."""

    def ask_yes_no(self, prompt: str, default: bool = False) -> bool:
        return Confirm.ask(prompt, default=default)

    def ask_text(self, prompt: str, default: str = "") -> str:
        return Prompt.ask(prompt, default=default) or ""


class AutoConfirmPrompter:
    """Режим --yes: на всё отвечаем «да», в текстовых вопросах берём default."""

    def ask_yes_no(self, prompt: str, default: bool = False) -> bool:
        console.print(f"[dim]{prompt} → yes (--yes)[/dim]")
        return True

    def ask_text(self, prompt: str, default: str = "") -> str:
        console.print(f"[dim]{prompt} → {default!r} (--yes)[/dim]")
        return default
