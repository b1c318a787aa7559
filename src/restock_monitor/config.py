#!/usr/bin/env python3
"""
Configuration loading for the restock monitor

Settings come from a JSON file (config/monitor_config.json by default) with a
small set of environment overrides. Missing keys fall back to DEFAULT_CONFIG.
"""
import copy
import json
import logging
import os
from pathlib import Path
from typing import Dict, List, Optional

from .exceptions import ConfigError
from .models import TargetConfig

DEFAULT_CONFIG_PATH = 'config/monitor_config.json'

DEFAULT_CONFIG = {
    "targets": [],
    "settings": {
        "mode": "test",
        "polling": {
            "base_delay_seconds": 3.0,
            "low_delay_seconds": 1.0,
            "low_window_seconds": 5,
            "request_timeout_seconds": 10
        },
        "checkout": {
            "loop_guard_max": 1,
            "challenge_settle_seconds": 1.0,
            "checkpoint_poll_seconds": 1.0,
            "checkpoint_timeout_seconds": 60,
            "resume_on_stock_problems": True
        },
        "solver": {
            "url": None,
            "timeout_seconds": 120
        },
        "store_strategies": {
            "kith": "cart_post"
        },
        "retry_candidates": False,
        "logging": {
            "level": "INFO",
            "log_dir": "logs"
        }
    }
}

ENV_OVERRIDES = {
    'RESTOCK_MODE': ('mode',),
    'RESTOCK_LOG_LEVEL': ('logging', 'level'),
    'RESTOCK_SOLVER_URL': ('solver', 'url'),
}


def _merge(base: Dict, override: Dict) -> Dict:
    """Recursively merge `override` onto a copy of `base`"""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class Settings:
    """Resolved settings for one monitor process"""

    def __init__(self, data: Optional[Dict] = None, environ: Optional[Dict] = None):
        self.logger = logging.getLogger(__name__)
        self.data = _merge(DEFAULT_CONFIG, data or {})
        self._apply_env(os.environ if environ is None else environ)
        self.targets = self._parse_targets(self.data.get('targets', []))

    @classmethod
    def load(cls, config_path: str = DEFAULT_CONFIG_PATH, environ: Optional[Dict] = None) -> 'Settings':
        """Load settings from JSON"""
        path = Path(config_path)
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}", {'path': str(path)})
        try:
            with open(path, 'r') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in {path}: {e}", {'path': str(path)}) from e
        if not isinstance(data, dict):
            raise ConfigError(f"Config root must be an object: {path}")
        return cls(data, environ=environ)

    def _apply_env(self, environ):
        settings = self.data['settings']
        for var, keys in ENV_OVERRIDES.items():
            value = environ.get(var)
            if not value:
                continue
            node = settings
            for key in keys[:-1]:
                node = node.setdefault(key, {})
            node[keys[-1]] = value
            self.logger.debug(f"{var} overrides settings.{'.'.join(keys)}")

    def _parse_targets(self, raw_targets) -> List[TargetConfig]:
        targets = []
        for i, raw in enumerate(raw_targets):
            if not isinstance(raw, dict) or not raw.get('store_url'):
                raise ConfigError(f"Target #{i} is missing store_url", {'target': raw})
            targets.append(TargetConfig(
                name=raw.get('name') or raw['store_url'],
                store_url=raw['store_url'].rstrip('/'),
                store_id=raw.get('store_id', 'default'),
                keywords=list(raw.get('keywords', [])),
                sizes=list(raw.get('sizes', [])),
                enabled=raw.get('enabled', True),
            ))
        return targets

    @property
    def settings(self) -> Dict:
        return self.data['settings']

    @property
    def mode(self) -> str:
        return self.settings['mode']

    @property
    def production(self) -> bool:
        return str(self.mode).lower() == 'production'

    @property
    def polling(self) -> Dict:
        return self.settings['polling']

    @property
    def checkout(self) -> Dict:
        return self.settings['checkout']

    @property
    def solver(self) -> Dict:
        return self.settings['solver']

    @property
    def store_strategies(self) -> Dict[str, str]:
        return self.settings['store_strategies']

    @property
    def retry_candidates(self) -> bool:
        return bool(self.settings['retry_candidates'])

    @property
    def resume_on_stock_problems(self) -> bool:
        return bool(self.checkout.get('resume_on_stock_problems', True))

    @property
    def logging_settings(self) -> Dict:
        return self.settings['logging']

    def enabled_targets(self) -> List[TargetConfig]:
        return [t for t in self.targets if t.enabled]


def write_default_config(config_path: str = DEFAULT_CONFIG_PATH) -> bool:
    """Create the default config file; returns False if one already exists"""
    path = Path(config_path)
    if path.exists():
        return False
    path.parent.mkdir(parents=True, exist_ok=True)
    default_config = copy.deepcopy(DEFAULT_CONFIG)
    default_config['targets'] = [{
        "name": "example",
        "store_url": "https://shop.example.com",
        "store_id": "default",
        "keywords": ["dunk low"],
        "sizes": ["10", "10.5"],
        "enabled": False
    }]
    with open(path, 'w') as f:
        json.dump(default_config, f, indent=2)
    return True
