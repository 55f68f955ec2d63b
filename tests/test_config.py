"""Configuration manager, engine settings and CLI override precedence."""

import json
import types

import pytest

import forecast_engine_src.config_utils as cfg
from config import ConfigurationError, get_config
from config.manager import ENV_VAR, ConfigurationManager
from forecast_engine_src.config_utils import EngineConfig, get_config_value


def _write(path, data):
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


def test_packaged_defaults_are_valid(monkeypatch):
    monkeypatch.delenv(ENV_VAR, raising=False)
    manager = ConfigurationManager()
    assert manager.validate_configuration() == {}
    assert manager.get("model.search_space.max_p") == 5
    assert manager.get("stationarity.max_D") == 2
    assert EngineConfig().max_D == 2
    assert manager.get("model.missing.key", "fallback") == "fallback"
    summary = manager.get_configuration_summary()
    assert summary["loaded_configs"] == ["engine_defaults.json"]
    assert "var" in summary["sections"]


def test_user_file_overrides_defaults(tmp_path, monkeypatch):
    monkeypatch.delenv(ENV_VAR, raising=False)
    path = _write(tmp_path / "cfg.json", {"model": {"search_space": {"max_p": 2}, "information_criterion": "bic"}})
    manager = ConfigurationManager(path)
    assert manager.get("model.search_space.max_p") == 2
    # untouched siblings survive the merge
    assert manager.get("model.search_space.max_q") == 5
    assert manager.get("model.information_criterion") == "bic"


def test_env_var_names_config_file(tmp_path, monkeypatch):
    path = _write(tmp_path / "env.json", {"forecast": {"horizon": 6}})
    monkeypatch.setenv(ENV_VAR, str(path))
    manager = get_config(reload=True)
    assert manager.get("forecast.horizon") == 6
    monkeypatch.delenv(ENV_VAR)
    get_config(reload=True)


def test_invalid_files_raise(tmp_path):
    with pytest.raises(ConfigurationError):
        ConfigurationManager(tmp_path / "missing.json")
    bad = tmp_path / "bad.json"
    bad.write_text("{not json", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        ConfigurationManager(bad)


def test_validation_reports_problems(tmp_path, monkeypatch):
    monkeypatch.delenv(ENV_VAR, raising=False)
    path = _write(tmp_path / "cfg.json", {
        "stationarity": {"alpha": 2.0},
        "model": {"information_criterion": "hqic", "search_space": {"max_p": 9}},
        "var": {"deterministic": ["trend"]},
        "comparison": {"families": ["sarima", "prophet"]},
    })
    errors = ConfigurationManager(path).validate_configuration()
    assert set(errors) == {"stationarity", "model", "var", "comparison"}
    assert len(errors["model"]) == 2


def test_engine_config_from_manager(tmp_path, monkeypatch):
    monkeypatch.delenv(ENV_VAR, raising=False)
    path = _write(tmp_path / "cfg.json", {
        "model": {"period": 4, "search_mode": "exhaustive", "information_criterion": "AICc"},
        "forecast": {"coverage_levels": [80, 95]},
        "var": {"deterministic": ["constant", "trend"]},
    })
    config = EngineConfig.from_config_manager(ConfigurationManager(path))
    assert config.period == 4
    assert config.search_mode == "exhaustive"
    assert config.criterion == "aicc"
    assert config.coverage_levels == (80, 95)
    assert config.var_deterministic == ("constant", "trend")
    assert config.max_steps == 94
    assert config.search_bounds.max_P == 2


def test_engine_config_overrides_ignore_none():
    config = EngineConfig().with_overrides(period=4, criterion=None, max_p=1)
    assert config.period == 4
    assert config.criterion == "aic"
    assert config.max_p == 1


def test_get_config_value_precedence(tmp_path, monkeypatch):
    monkeypatch.delenv(ENV_VAR, raising=False)
    path = _write(tmp_path / "cfg.json", {"forecast": {"horizon": 8}})
    monkeypatch.setattr(cfg, "config_manager", ConfigurationManager(path))

    args = types.SimpleNamespace(holdout=4)
    assert get_config_value("forecast.horizon", 12, args, "holdout") == 4
    args = types.SimpleNamespace(holdout=None)
    assert get_config_value("forecast.horizon", 12, args, "holdout") == 8
    assert get_config_value("forecast.unknown", 12, args, "holdout") == 12

    monkeypatch.setattr(cfg, "config_manager", None)
    assert get_config_value("forecast.horizon", 12, args, "holdout") == 12


def test_initialize_config_falls_back_on_error(tmp_path, monkeypatch):
    monkeypatch.setattr(cfg, "config_manager", None)
    assert cfg.initialize_config(tmp_path / "missing.json") is None
