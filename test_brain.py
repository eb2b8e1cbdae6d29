import pytest

import gitease_brain
from gitease_brain import (
    ProviderError,
    Suggestion,
    clean_command,
    looks_like_workflow,
    parse_suggestion_output,
    parse_workflow_output,
    plan_workflow,
    suggest,
)


@pytest.mark.parametrize("text", [
    "commit my changes and push",
    "fetch then rebase on main",
    "sync my branch with main",
    "squash the last 3 commits",
    "stage everything, commit it",
])
def test_workflow_requests(text):
    assert looks_like_workflow(text)


@pytest.mark.parametrize("text", [
    "undo my last commit",
    "show me the status",
    "create a branch called feature",
])
def test_single_requests(text):
    assert not looks_like_workflow(text)


@pytest.mark.parametrize("raw,expected", [
    ("$ git status", "git status"),
    ("sudo git clean -n", "git clean -n"),
    ("`git log`", "git log"),
    ('"git fetch --all"', "git fetch --all"),
])
def test_clean_command(raw, expected):
    assert clean_command(raw) == expected


def test_parse_suggestion_from_code_block():
    out = """Use a soft reset to undo the last commit but keep changes.
```bash
git reset --soft HEAD~1
```
Total usage est: 1 Premium request
"""
    s = parse_suggestion_output(out)
    assert s.command == "git reset --soft HEAD~1"
    assert s.explanation == "Use a soft reset to undo the last commit but keep changes."


def test_parse_suggestion_prefers_git_line():
    out = "```sh\ncd repo\nsudo git status\n```"
    assert parse_suggestion_output(out).command == "git status"


def test_parse_suggestion_inline_dollar():
    out = "You can run `$ git branch -a` to see all branches"
    assert parse_suggestion_output(out).command == "git branch -a"


def test_parse_suggestion_nothing():
    s = parse_suggestion_output("I am not sure what you mean.")
    assert s.command == ""


def test_parse_workflow_numbered_block():
    out = """Sync your branch with main
```bash
1. git fetch origin
2. git merge origin/main
3. git push
```
1. Download the latest changes
2. Merge them (conflicts may need resolution)
3. Publish the result
"""
    plan = parse_workflow_output(out)
    assert [s.command for s in plan.steps] == ["git fetch origin", "git merge origin/main", "git push"]
    assert plan.steps[1].explanation.startswith("Merge them")
    assert plan.description == "Sync your branch with main"


def test_suggest_uses_json_answer(monkeypatch):
    monkeypatch.setattr(gitease_brain, "_ask_model", lambda system, user: '{"command": "git status", "explanation": "Show state"}')
    assert suggest("what changed?") == Suggestion(command="git status", explanation="Show state")


def test_suggest_falls_back_to_text(monkeypatch):
    monkeypatch.setattr(gitease_brain, "_ask_model", lambda system, user: "Try this:\n```\ngit stash\n```")
    assert suggest("put my changes aside").command == "git stash"


def test_suggest_without_command_raises(monkeypatch):
    monkeypatch.setattr(gitease_brain, "_ask_model", lambda system, user: '{"command": "", "explanation": "?"}')
    with pytest.raises(ProviderError):
        suggest("do something")


def test_plan_workflow_json(monkeypatch):
    answer = (
        '```json\n{"description": "Commit and push", "steps": ['
        '{"command": "git add -A", "explanation": "stage"},'
        '{"command": "git commit -m \\"wip\\"", "explanation": "commit"},'
        '{"command": "git push", "explanation": "publish"}]}\n```'
    )
    monkeypatch.setattr(gitease_brain, "_ask_model", lambda system, user: answer)
    plan = plan_workflow("commit and push")
    assert plan.description == "Commit and push"
    assert [s.command for s in plan.steps] == ["git add -A", 'git commit -m "wip"', "git push"]


def test_plan_workflow_empty_raises(monkeypatch):
    monkeypatch.setattr(gitease_brain, "_ask_model", lambda system, user: '{"steps": []}')
    with pytest.raises(ProviderError):
        plan_workflow("sync")


def test_plan_workflow_defaults_description(monkeypatch):
    monkeypatch.setattr(gitease_brain, "_ask_model", lambda system, user: '{"steps": ["git fetch", "git pull"]}')
    plan = plan_workflow("  sync with remote ")
    assert plan.description == "sync with remote"
    assert [s.command for s in plan.steps] == ["git fetch", "git pull"]


def test_bad_api_key(monkeypatch):
    monkeypatch.setattr(gitease_brain, "_CLIENT", None)
    monkeypatch.setattr(gitease_brain, "load_dotenv", lambda *a, **k: False)
    monkeypatch.setenv("OPENAI_API_KEY", "not-a-key")
    with pytest.raises(ProviderError):
        gitease_brain._client()
