import os
import json
import re
from dataclasses import dataclass, field
from typing import List

from dotenv import load_dotenv, find_dotenv
from openai import OpenAI, OpenAIError, APITimeoutError

from gitcore.config import model_name, provider_timeout


class ProviderError(RuntimeError):
    """Модель не дала пригодного ответа (таймаут, нет команды, ключ и т.п.)."""


@dataclass
class Suggestion:
    command: str
    explanation: str


@dataclass
class WorkflowPlan:
    steps: List[Suggestion] = field(default_factory=list)
    description: str = ""


# Ограничения для одиночной команды
PROMPT_CONSTRAINTS = [
    "Return exactly one safe git command only. Do not chain commands.",
    "Prefer the simplest command that satisfies the request.",
]

# Ограничения для плана из нескольких шагов
WORKFLOW_PROMPT_CONSTRAINTS = [
    "Return an ordered list of git commands to accomplish this task.",
    "Each step is exactly one git command. Do not chain commands with && or ;.",
    "Use only safe git commands. Prefer the simplest approach.",
    "Explain each step in one short line.",
    "If a merge or rebase could cause conflicts, include the merge/rebase step and note that conflicts may need resolution.",
]

# Признаки того, что пользователь хочет несколько шагов
WORKFLOW_PATTERNS = [
    r"\band\b",
    r"\bthen\b",
    r"\bafter that\b",
    r"\bsync\b",
    r"\bupdate.*branch\b",
    r"\bpull.*merge\b",
    r"\bmerge.*(?:resolve|fix)\b",
    r"\bsave.*push\b",
    r"\bcommit.*push\b",
    r"\bstage.*commit\b",
    r"\bfetch.*merge\b",
    r"\bpull.*rebase\b",
    r"\bclean.*up\b",
    r"\bsquash\b",
    r"\bbackup.*(?:push|save)\b",
]

# служебные строки, которые не являются пояснением
_NOISE_MARKERS = ("Total usage", "API time", "session time", "code changes", "Breakdown by")


def looks_like_workflow(user_input: str) -> bool:
    text = user_input or ""
    return any(re.search(p, text, flags=re.IGNORECASE) for p in WORKFLOW_PATTERNS)


# -------------------- чистка и разбор ответа --------------------

def clean_command(command: str) -> str:
    """Убираем `$ `, `sudo `, обрамляющие кавычки/бэктики."""
    s = (command or "").strip()
    s = s.strip("`").strip()
    if len(s) >= 2 and s[0] == s[-1] and s[0] in ("'", '"'):
        s = s[1:-1].strip()
    s = re.sub(r"^\$\s*", "", s)
    s = re.sub(r"^sudo\s+", "", s)
    return s


def _extract_json(text: str) -> str:
    """
    Достаём JSON из ответа модели:
    - если завернула в ```json ... ``` - берём внутренний блок
    - иначе от первой { до последней }
    """
    m = re.search(r"```(?:json)?\s*(\{.*\})\s*```", text, flags=re.S)
    if m:
        return m.group(1)
    if "{" in text and "}" in text:
        return text[text.find("{"): text.rfind("}") + 1]
    return text


def _code_block_lines(output: str) -> tuple[list[str], list[str]]:
    """Делит ответ на строки внутри ``` и строки снаружи."""
    inside: list[str] = []
    outside: list[str] = []
    in_block = False
    for line in (output or "").splitlines():
        if line.strip().startswith("```"):
            in_block = not in_block
            continue
        if not line.strip():
            continue
        (inside if in_block else outside).append(line.strip())
    return inside, outside


def parse_suggestion_output(output: str) -> Suggestion:
    """
    Фоллбэк для ответа не в JSON: первая git-команда из блока кода
    (или строка вида `$ git ...`), пояснение - первые строки вне блока.
    """
    inside, outside = _code_block_lines(output)

    command = ""
    for line in inside:
        cand = clean_command(line)
        if cand.startswith("git "):
            command = cand
            break
    if not command and inside:
        command = clean_command(inside[0])
    if not command:
        for line in outside:
            m = re.search(r"\$\s*(git\s+[^\n`]+)", line, flags=re.IGNORECASE)
            if m:
                command = m.group(1).strip()
                break

    explanation_lines = [
        ln for ln in outside
        if not any(marker in ln for marker in _NOISE_MARKERS) and not re.search(r"\$\s*git\s", ln)
    ]
    explanation = " ".join(explanation_lines[:3]).strip()
    explanation = re.sub(r"^Let me try a different approach:\s*", "", explanation, flags=re.IGNORECASE)
    return Suggestion(command=command, explanation=explanation or "Suggested command")


_NUMBERED_RE = re.compile(r"^\s*(\d+)[.)]\s*(.+)$")


def parse_workflow_output(output: str) -> WorkflowPlan:
    """
    Фоллбэк для плана: нумерованные команды в блоке кода
    (1. git fetch), пояснения - нумерованные строки после блока.
    """
    inside, outside = _code_block_lines(output)

    commands: list[str] = []
    for line in inside:
        m = _NUMBERED_RE.match(line)
        cand = clean_command(m.group(2) if m else line)
        if cand.startswith("git "):
            commands.append(cand)

    notes: dict[int, str] = {}
    description = ""
    for line in outside:
        m = _NUMBERED_RE.match(line)
        if m:
            notes.setdefault(int(m.group(1)), m.group(2).strip())
        elif not description and not any(marker in line for marker in _NOISE_MARKERS):
            description = line

    steps = [
        Suggestion(command=cmd, explanation=notes.get(i, ""))
        for i, cmd in enumerate(commands, start=1)
    ]
    return WorkflowPlan(steps=steps, description=description)


def _suggestion_from_json(data: dict) -> Suggestion:
    single = data.get("single") if isinstance(data.get("single"), dict) else data
    return Suggestion(
        command=clean_command(str(single.get("command") or "")),
        explanation=str(single.get("explanation") or "").strip() or "Suggested command",
    )


def _plan_from_json(data: dict) -> WorkflowPlan:
    wf = data.get("workflow") if isinstance(data.get("workflow"), dict) else data
    steps: list[Suggestion] = []
    for s in wf.get("steps") or []:
        if isinstance(s, str):
            s = {"command": s}
        if not isinstance(s, dict):
            continue
        cmd = clean_command(str(s.get("command") or s.get("run") or ""))
        if not cmd:
            continue
        steps.append(Suggestion(command=cmd, explanation=str(s.get("explanation") or "").strip()))
    return WorkflowPlan(steps=steps, description=str(wf.get("description") or "").strip())


# -------------------- модель --------------------

_CLIENT = None


def _client() -> OpenAI:
    global _CLIENT
    if _CLIENT is not None:
        return _CLIENT

    # ищем .env в текущем каталоге проекта
    load_dotenv(find_dotenv(usecwd=True))

    api_key = (os.getenv("OPENAI_API_KEY") or "").strip().strip('"').strip("'")
    if "\n" in api_key:
        api_key = api_key.splitlines()[0].strip()

    # простая валидация: ASCII и начинается с sk-
    if not (api_key.startswith("sk-") and api_key.isascii()):
        raise ProviderError(
            "OPENAI_API_KEY is missing or malformed. Put a single line "
            "OPENAI_API_KEY=sk-... into .env (no quotes, no extra characters)."
        )

    _CLIENT = OpenAI(api_key=api_key, timeout=provider_timeout())
    return _CLIENT


def _ask_model(system_prompt: str, user_input: str) -> str:
    try:
        resp = _client().chat.completions.create(
            model=model_name(),
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_input},
            ],
            temperature=0.1,
            max_tokens=800,
            response_format={"type": "json_object"},
        )
    except APITimeoutError as e:
        raise ProviderError(f"Timed out waiting for a suggestion: {e}") from e
    except OpenAIError as e:
        raise ProviderError(f"Failed to get a suggestion: {e}") from e
    return (resp.choices[0].message.content or "").strip()


def suggest(user_input: str) -> Suggestion:
    """Одна git-команда + пояснение."""
    system_prompt = "\n".join([
        "You are a git expert working in the user's terminal.",
        *PROMPT_CONSTRAINTS,
        'Answer with a single JSON object: {"command": "<git command>", "explanation": "<one sentence>"}',
    ])
    raw = _ask_model(system_prompt, f"User request: {user_input}")

    try:
        data = json.loads(_extract_json(raw))
        suggestion = _suggestion_from_json(data) if isinstance(data, dict) else parse_suggestion_output(raw)
    except ValueError:
        suggestion = parse_suggestion_output(raw)

    if not suggestion.command:
        raise ProviderError("The model did not return a runnable git command.")
    return suggestion


def plan_workflow(user_input: str) -> WorkflowPlan:
    """Упорядоченный список git-команд для составной задачи."""
    system_prompt = "\n".join([
        "You are a git expert working in the user's terminal.",
        *WORKFLOW_PROMPT_CONSTRAINTS,
        "Answer with a single JSON object:",
        '{"description": "<short plan title>", "steps": [{"command": "<git command>", "explanation": "<one line>"}]}',
    ])
    raw = _ask_model(system_prompt, f"User request: {user_input}")

    try:
        data = json.loads(_extract_json(raw))
        plan = _plan_from_json(data) if isinstance(data, dict) else parse_workflow_output(raw)
    except ValueError:
        plan = parse_workflow_output(raw)

    if not plan.steps:
        raise ProviderError("The model did not return a workflow plan.")
    if not plan.description:
        plan.description = user_input.strip()
    return plan
