import importlib

from couple_budget import config


def test_environment_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv('COUPLE_BUDGET_DATA_DIR', str(tmp_path / 'data'))
    monkeypatch.setenv('COUPLE_BUDGET_SWEEP_INTERVAL', '60')
    try:
        reloaded = importlib.reload(config)
        assert reloaded.DB_PATH == (tmp_path / 'data' / 'budget.db').resolve()
        assert reloaded.EXPORT_DIR == tmp_path / 'data' / 'exports'
        assert reloaded.SWEEP_INTERVAL_SECONDS == 60.0

        reloaded.ensure_data_directories()
        assert (tmp_path / 'data' / 'exports').is_dir()
    finally:
        monkeypatch.undo()
        importlib.reload(config)


def test_defaults():
    assert config.DEFAULT_SALAIRES == {'pilou': 6000.0, 'doudou': 10000.0}
    assert sum(config.DEFAULT_BUDGETS.values()) == 4700.0
