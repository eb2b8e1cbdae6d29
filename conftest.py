import pytest


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """Конфиг, журнал и логи - только во временном каталоге теста."""
    home = tmp_path / "gitease_home"
    home.mkdir()
    monkeypatch.setenv("GITEASE_HOME", str(home))
    monkeypatch.setenv("GITEASE_LEDGER", str(home / "ledger.json"))
    monkeypatch.delenv("GITEASE_MODEL", raising=False)
    return home
