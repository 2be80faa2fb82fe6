"""
Configuration utilities
"""

import copy
import logging
from pathlib import Path
from typing import Any, Dict, Mapping

import yaml

logger = logging.getLogger(__name__)


def deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    """Recursively merge ``override`` into a copy of ``base``"""
    merged = copy.deepcopy(dict(base))
    for key, value in (override or {}).items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


class ConfigManager:
    """Manages configuration loading"""

    def __init__(self, config_dir: str = "config"):
        self.config_dir = Path(config_dir)

    def load_config(self, config_type: str) -> Dict[str, Any]:
        """Load configuration of specified type, preferring the *_local.yml override"""
        local_file = self.config_dir / f"{config_type}_local.yml"
        template_file = self.config_dir / f"{config_type}.yml"

        config_file = local_file if local_file.exists() else template_file

        if not config_file.exists():
            logger.warning(f"Config file not found: {config_file}")
            return {}

        try:
            with open(config_file, 'r') as f:
                config = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to load config {config_type}: {e}")
            return {}

        if not isinstance(config, dict):
            logger.error(f"Config {config_file} must be a mapping, got {type(config).__name__}")
            return {}

        logger.info(f"Loaded config from {config_file}")
        return config

    def get_import_config(self) -> Dict[str, Any]:
        """Get import pipeline configuration"""
        return self.load_config("import")
