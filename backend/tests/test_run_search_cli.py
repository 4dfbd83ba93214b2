import importlib.util
import json
from pathlib import Path

import pytest

from conftest import StubRouter, make_participants

SCRIPT = Path(__file__).resolve().parents[1] / 'scripts' / 'run_search.py'


@pytest.fixture
def run_search(monkeypatch):
    spec = importlib.util.spec_from_file_location('run_search', SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    router = StubRouter()
    monkeypatch.setattr(module, 'RoutingClient', lambda cache, settings: router)
    module.router = router
    return module


def _write_input(path, total=12, addressed=8):
    path.write_text(json.dumps({
        'config': {
            'start_address': 'Central Station',
            'end_address': 'Town Square',
            'start_datetime': '2026-11-07T18:00:00+01:00',
            'time_per_stop_minutes': 30,
            'num_groups': 6,
            'num_stops': 3,
        },
        'participants': [p.model_dump(mode='json') for p in make_participants(total, addressed)],
    }), encoding='utf-8')


def test_cli_prints_ranking_and_writes_results(run_search, tmp_path, capsys):
    source = tmp_path / 'event.json'
    output = tmp_path / 'results.json'
    _write_input(source)

    code = run_search.main(['--input', str(source), '--trials', '3', '--top-k', '2', '--seed', '5', '--output', str(output)])

    assert code == 0
    out = capsys.readouterr().out
    assert 'Trials run: 3 (failed: 0)' in out
    assert '#1:' in out and '#2:' in out
    assert '++++ Event ++++' in out
    saved = json.loads(output.read_text(encoding='utf-8'))
    assert len(saved) == 2
    assert saved[0]['total_time_seconds'] <= saved[1]['total_time_seconds']


def test_cli_reports_infeasible_roster(run_search, tmp_path, capsys):
    source = tmp_path / 'event.json'
    _write_input(source, total=6, addressed=5)
    assert run_search.main(['--input', str(source), '--trials', '2']) == 2
    assert 'Infeasible input' in capsys.readouterr().err
    assert run_search.router.calls == []


@pytest.mark.parametrize('flag', ['--trials', '--top-k'])
def test_cli_rejects_zero_counts(run_search, tmp_path, capsys, flag):
    source = tmp_path / 'event.json'
    _write_input(source)
    with pytest.raises(SystemExit) as info:
        run_search.main(['--input', str(source), flag, '0'])
    assert info.value.code == 2
    assert 'must be at least 1' in capsys.readouterr().err
    assert run_search.router.calls == []
