"""
Tests for settings loading
"""
import json

import pytest

from restock_monitor.config import Settings, write_default_config
from restock_monitor.exceptions import ConfigError


def write(path, data):
    path.write_text(json.dumps(data))
    return str(path)


def test_defaults_are_merged(tmp_path):
    path = write(tmp_path / 'config.json', {
        'targets': [{'name': 'dunks', 'store_url': 'https://shop.test/', 'keywords': ['dunk']}],
        'settings': {'polling': {'base_delay_seconds': 5}},
    })

    settings = Settings.load(path, environ={})

    assert settings.polling['base_delay_seconds'] == 5
    assert settings.polling['low_delay_seconds'] == 1.0
    assert settings.checkout['loop_guard_max'] == 1
    assert settings.resume_on_stock_problems
    assert settings.mode == 'test'
    assert not settings.production
    assert settings.store_strategies == {'kith': 'cart_post'}
    target = settings.targets[0]
    assert target.store_url == 'https://shop.test'
    assert target.store_id == 'default'
    assert target.criteria.keywords == ('dunk',)


def test_environment_overrides():
    settings = Settings({}, environ={
        'RESTOCK_MODE': 'production',
        'RESTOCK_LOG_LEVEL': 'DEBUG',
        'RESTOCK_SOLVER_URL': 'http://localhost:9000/solve',
    })

    assert settings.production
    assert settings.logging_settings['level'] == 'DEBUG'
    assert settings.solver['url'] == 'http://localhost:9000/solve'


def test_enabled_targets():
    settings = Settings({'targets': [
        {'name': 'a', 'store_url': 'https://a.test'},
        {'name': 'b', 'store_url': 'https://b.test', 'enabled': False},
    ]}, environ={})

    assert [t.name for t in settings.enabled_targets()] == ['a']


def test_missing_file(tmp_path):
    with pytest.raises(ConfigError, match='not found'):
        Settings.load(str(tmp_path / 'missing.json'), environ={})


def test_invalid_json(tmp_path):
    path = tmp_path / 'config.json'
    path.write_text('{not json')

    with pytest.raises(ConfigError, match='Invalid JSON'):
        Settings.load(str(path), environ={})


def test_target_without_store_url():
    with pytest.raises(ConfigError, match='store_url'):
        Settings({'targets': [{'name': 'broken'}]}, environ={})


def test_write_default_config(tmp_path):
    path = tmp_path / 'config' / 'monitor_config.json'

    assert write_default_config(str(path))
    assert not write_default_config(str(path))

    settings = Settings.load(str(path), environ={})
    assert len(settings.targets) == 1
    assert settings.enabled_targets() == []
