import pytest

from restock_monitor import cli
from restock_monitor.exceptions import Unavailable

from fakes import snapshot


def test_init_writes_config(tmp_path, capsys):
    path = tmp_path / 'monitor_config.json'

    assert cli.main(['--config', str(path), 'init']) == 0
    assert path.exists()
    assert cli.main(['--config', str(path), 'init']) == 0
    assert 'already exists' in capsys.readouterr().out


def test_no_command_prints_help(capsys):
    assert cli.main([]) == 1
    assert 'usage' in capsys.readouterr().out


def test_monitor_without_config(tmp_path, capsys):
    assert cli.main(['--config', str(tmp_path / 'missing.json'), 'monitor']) == 1
    assert 'restock-monitor init' in capsys.readouterr().out


def test_check_lists_available_variants(monkeypatch, capsys):
    monkeypatch.setattr(cli, 'check_snapshot', lambda url, timeout: snapshot(
        (1, 'Nike Dunk Low Panda', [(11, False, '9'), (12, True, '10')]),
    ))

    assert cli.main(['check', 'https://shop.test']) == 0
    out = capsys.readouterr().out
    assert '1 products, 2 variants, 1 available' in out
    assert 'Nike Dunk Low Panda' in out


def test_check_reports_fetch_errors(monkeypatch, capsys):
    def unavailable(url, timeout):
        raise Unavailable('Connection error: refused')

    monkeypatch.setattr(cli, 'check_snapshot', unavailable)

    assert cli.main(['check', 'https://shop.test']) == 1
    assert 'Connection error' in capsys.readouterr().out


@pytest.mark.parametrize('argv', [['check'], ['monitor', '--max-cycles', 'x']])
def test_bad_arguments_exit(argv):
    with pytest.raises(SystemExit):
        cli.main(argv)
