"""Configuration manager for the forecast engine.

Loads the JSON defaults shipped with the package, overlays an optional user
configuration file and exposes dot-notation access to nested keys, e.g.
``config.get('model.search_space.max_p')``.

Resolution order for the user file:
1. Explicit ``config_path`` argument
2. ``FORECAST_ENGINE_CONFIG`` environment variable
3. None (packaged defaults only)
"""

import copy
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

DEFAULTS_PATH = Path(__file__).parent / "engine_defaults.json"
ENV_VAR = "FORECAST_ENGINE_CONFIG"

VALID_CRITERIA = ("aic", "aicc", "bic")
VALID_VAR_CRITERIA = ("aic", "bic", "hqic", "fpe")
VALID_SEARCH_MODES = ("stepwise", "exhaustive")
VALID_FAMILIES = ("sarima", "sarimax", "var")
VALID_TRANSFORMS = ("level", "log")


class ConfigurationError(Exception):
    """Raised when a configuration file cannot be read or parsed."""


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _read_json(path: Path) -> Dict[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError as e:
        raise ConfigurationError(f"Configuration file not found: {path}") from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration root in {path} must be an object.")
    return data


class ConfigurationManager:
    """Layered JSON configuration with dot-notation lookup."""

    def __init__(self, config_path: Optional[Path] = None):
        self.defaults_path = DEFAULTS_PATH
        self.config_path: Optional[Path] = None
        self._config = _read_json(self.defaults_path)
        self.loaded_configs: List[str] = [self.defaults_path.name]

        path = config_path or os.environ.get(ENV_VAR)
        if path:
            self.config_path = Path(path)
            self._config = _deep_merge(self._config, _read_json(self.config_path))
            self.loaded_configs.append(self.config_path.name)
            logger.info("Loaded configuration overrides from %s", self.config_path)

    def get(self, key_path: str, default: Any = None) -> Any:
        """Return the value at a dotted key path, or ``default`` when absent."""
        node: Any = self._config
        for part in key_path.split("."):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return copy.deepcopy(node)

    def get_search_space(self) -> Dict[str, int]:
        return self.get("model.search_space", {})

    def validate_configuration(self) -> Dict[str, List[str]]:
        """
        Check value ranges and enumerations.

        Returns
        -------
        Dict[str, List[str]]
            Section name -> list of problems; empty when valid.
        """
        errors: Dict[str, List[str]] = {}

        def _add(section: str, msg: str) -> None:
            errors.setdefault(section, []).append(msg)

        alpha = self.get("stationarity.alpha", 0.05)
        if not isinstance(alpha, (int, float)) or not 0.0 < float(alpha) < 1.0:
            _add("stationarity", f"alpha must be in (0, 1), got {alpha!r}")
        for key in ("max_d", "max_D"):
            val = self.get(f"stationarity.{key}", 0)
            if not isinstance(val, int) or not 0 <= val <= 2:
                _add("stationarity", f"{key} must be an integer in [0, 2], got {val!r}")

        for key, val in self.get_search_space().items():
            if not isinstance(val, int) or not 0 <= val <= 5:
                _add("model", f"search_space.{key} must be an integer in [0, 5], got {val!r}")
        if self.get("model.information_criterion", "aic") not in VALID_CRITERIA:
            _add("model", f"information_criterion must be one of {VALID_CRITERIA}")
        if self.get("model.search_mode", "stepwise") not in VALID_SEARCH_MODES:
            _add("model", f"search_mode must be one of {VALID_SEARCH_MODES}")

        levels = self.get("forecast.coverage_levels", [])
        if not levels or any(not isinstance(v, int) or not 0 < v < 100 for v in levels):
            _add("forecast", f"coverage_levels must be integers in (0, 100), got {levels!r}")
        horizon = self.get("forecast.horizon", 1)
        if not isinstance(horizon, int) or horizon < 1:
            _add("forecast", f"horizon must be a positive integer, got {horizon!r}")
        if self.get("forecast.target_transform", "level") not in VALID_TRANSFORMS:
            _add("forecast", f"target_transform must be one of {VALID_TRANSFORMS}")

        if self.get("var.information_criterion", "aic") not in VALID_VAR_CRITERIA:
            _add("var", f"information_criterion must be one of {VALID_VAR_CRITERIA}")
        deterministic = set(self.get("var.deterministic", []))
        if not deterministic <= {"constant", "trend"} or deterministic == {"trend"}:
            _add("var", f"deterministic must be a subset of constant/trend with constant, got {sorted(deterministic)}")

        unknown = set(self.get("comparison.families", [])) - set(VALID_FAMILIES)
        if unknown:
            _add("comparison", f"unknown model families: {sorted(unknown)}")

        return errors

    def get_configuration_summary(self) -> Dict[str, Any]:
        return {
            "loaded_configs": list(self.loaded_configs),
            "sections": sorted(self._config),
            "search_space": self.get_search_space(),
            "criterion": self.get("model.information_criterion"),
        }


_config_instance: Optional[ConfigurationManager] = None


def get_config(config_path: Optional[Path] = None, reload: bool = False) -> ConfigurationManager:
    """Return the process-wide configuration manager, creating it on first use."""
    global _config_instance
    if _config_instance is None or reload or config_path is not None:
        _config_instance = ConfigurationManager(config_path)
    return _config_instance
