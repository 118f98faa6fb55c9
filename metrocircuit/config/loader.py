"""YAML configuration loader for algorithm tunables.

Configuration is layered (later layers win):

  1. ``_DEFAULTS`` below         -- values the code was tuned with
  2. ``config/config.yaml``      -- checked-in overrides
  3. Environment (``Settings``)  -- deployment values under ``app``/``logging``

``_deep_merge`` merges dicts recursively, so a YAML file may override a
single scoring weight without restating the others.
"""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any

import yaml

from metrocircuit.config.settings import Settings
from metrocircuit.utils.errors import ConfigurationError

_DEFAULTS: dict[str, Any] = {
    "scoring": {
        "phrase": 0.35,
        "term": 0.25,
        "coverage": 0.20,
        "bigram": 0.10,
        "proximity": 0.10,
        "vector_weight": 0.6,
        "lexical_weight": 0.4,
        "floor": 0.05,
        "proximity_window": 80,
        "frequency_saturation": 3,
    },
    "router": {
        "detail_lookup_keywords": ["cable", "rating", "size", "mm2", "terminal", "ferrule"],
        "diagram_structure_keywords": ["incomer", "outgoing", "busbar", "feeder", "breaker"],
    },
    "rerank": {
        "preview_chars": 400,
    },
}


def load_config(path: str = "config/config.yaml", settings: Settings | None = None) -> dict[str, Any]:
    """Load YAML tunables and merge them over the built-in defaults.

    Args:
        path: Path to the YAML configuration file. A missing file is not an error.
        settings: Settings used for the ``app`` and ``logging`` sections.

    Returns:
        Fully resolved configuration dictionary.

    Raises:
        ConfigurationError: If the file exists but is not a YAML mapping.
    """
    config = copy.deepcopy(_DEFAULTS)

    config_path = Path(path)
    if config_path.exists():
        with open(config_path, encoding="utf-8") as f:
            try:
                yaml_config = yaml.safe_load(f) or {}
            except yaml.YAMLError as exc:
                raise ConfigurationError(f"Invalid YAML in {config_path}: {exc}") from exc
        if not isinstance(yaml_config, dict):
            raise ConfigurationError(f"{config_path} must contain a mapping at the top level")
        _deep_merge(config, yaml_config)

    settings = settings or Settings()
    _deep_merge(
        config,
        {
            "app": {"host": settings.app_host, "port": settings.app_port, "env": settings.app_env},
            "llm": {"available_providers": settings.get_available_llm_providers()},
            "logging": {"level": settings.log_level},
        },
    )
    return config


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
