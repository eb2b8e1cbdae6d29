from gitcore.config import (
    ledger_path,
    limits_for_risk,
    load_user_config,
    model_name,
    provider_timeout,
)


def test_defaults_without_file(isolated_home):
    cfg = load_user_config()
    assert cfg["model"] == "gpt-4o-mini"
    assert limits_for_risk("safe").timeout_sec == 60
    assert limits_for_risk("dangerous").timeout_sec == 120
    assert limits_for_risk("unknown").timeout_sec == 60


def test_user_limits_are_merged(isolated_home):
    (isolated_home / "config.yml").write_text(
        "model: gpt-test\n"
        "provider_timeout_sec: 15\n"
        "limits:\n"
        "  warning:\n"
        "    timeout_sec: 300\n",
        encoding="utf-8",
    )
    assert model_name() == "gpt-test"
    assert provider_timeout() == 15.0
    lim = limits_for_risk("warning")
    assert lim.timeout_sec == 300
    assert lim.grace_kill_sec == 3
    assert limits_for_risk("safe").timeout_sec == 60


def test_broken_yaml_falls_back(isolated_home):
    (isolated_home / "config.yml").write_text("limits: [unclosed\n", encoding="utf-8")
    assert load_user_config()["provider_timeout_sec"] == 60


def test_env_overrides(isolated_home, monkeypatch):
    monkeypatch.setenv("GITEASE_MODEL", "env-model")
    monkeypatch.setenv("GITEASE_LEDGER", str(isolated_home / "other.json"))
    assert model_name() == "env-model"
    assert ledger_path() == isolated_home / "other.json"


def test_ledger_path_from_config(isolated_home, monkeypatch):
    monkeypatch.delenv("GITEASE_LEDGER")
    (isolated_home / "config.yml").write_text(
        f"ledger_path: {isolated_home / 'from_cfg.json'}\n", encoding="utf-8"
    )
    assert ledger_path() == isolated_home / "from_cfg.json"


def test_scalar_limits_are_ignored(isolated_home):
    (isolated_home / "config.yml").write_text("limits: 5\n", encoding="utf-8")
    assert load_user_config()["limits"]["warning"]["timeout_sec"] == 120
    assert limits_for_risk("warning").timeout_sec == 120


def test_bad_limit_values_fall_back(isolated_home):
    (isolated_home / "config.yml").write_text(
        "limits:\n  safe: 7\n  warning:\n    timeout_sec: soon\n", encoding="utf-8"
    )
    assert limits_for_risk("safe").timeout_sec == 60
    assert limits_for_risk("warning").timeout_sec == 60
