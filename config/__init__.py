"""Configuration system for the forecast engine.

Provides the JSON-backed configuration manager used by the engine modules
and the CLI. Values are addressed with dot notation, e.g.
``get_config().get('model.search_space.max_p')``.
"""

from .manager import (
    ConfigurationManager,
    ConfigurationError,
    get_config,
)

__all__ = [
    'ConfigurationManager',
    'ConfigurationError',
    'get_config',
]
