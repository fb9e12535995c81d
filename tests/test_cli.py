import sys

import pytest
from loguru import logger

from evoplanets.cli import build_parser, main
from evoplanets.io.population import PlanetsPopulation
from evoplanets.planet import Planet


@pytest.fixture(autouse=True)
def _restore_logger():
    yield
    logger.remove()
    logger.add(sys.stderr)


def _write_config(path):
    path.write_text(
        'population_size: 3\n'
        'n_parallels: 9\n'
        'n_meridians: 6\n'
        'n_init_mutations: 1\n'
        'mutation_attempts: 3\n'
        'crossover_attempts: 2\n'
        'crossover_fallback_attempts: 2\n'
        'gravity_sample_size: 6\n'
        'tubes_resolution: 6\n'
        'diversity_limit: 0.0\n'
        'autointersection_step: 0.2\n'
    )


def test_parser_requires_action():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_run_writes_population_and_log(tmp_path, capsys):
    config = tmp_path / 'run.yaml'
    _write_config(config)
    population = tmp_path / 'out.pop'
    history = tmp_path / 'history.tsv'
    code = main(['--log-level', 'WARNING', 'run', '--config', str(config), '--epochs', '2',
                 '--seed', '3', '--population-out', str(population), '--log-out', str(history)])
    assert code == 0
    assert 'Completed 2 epoch(s)' in capsys.readouterr().out
    loaded = PlanetsPopulation.load(population)
    assert len(loaded) == 3
    rows = [line for line in history.read_text().splitlines() if not line.startswith('#')]
    assert len(rows) == 1 + 3


def test_run_rejects_bad_config(tmp_path, capsys):
    config = tmp_path / 'bad.yaml'
    config.write_text('no_such_setting: 1\n')
    assert main(['run', '--config', str(config)]) == 1
    assert 'no_such_setting' in capsys.readouterr().err


def test_inspect(tmp_path, capsys):
    path = tmp_path / 'planets.pop'
    PlanetsPopulation([Planet.sphere(9, 6, 1.0)] * 3, 6, 9, 1.0).save(path)
    assert main(['inspect', str(path)]) == 0
    out = capsys.readouterr().out
    assert 'planets:   3' in out
    assert 'parallels: 9' in out


def test_inspect_reports_corruption(tmp_path, capsys):
    path = tmp_path / 'broken.pop'
    path.write_bytes(b'POPU' + b'\x00' * 20)
    assert main(['inspect', str(path)]) == 1
    assert 'Error' in capsys.readouterr().err


def test_inspect_missing_file(tmp_path):
    assert main(['inspect', str(tmp_path / 'absent.pop')]) == 1
