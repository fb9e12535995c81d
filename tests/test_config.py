import pytest
import yaml

from evoplanets.config import (
    CrossoverType,
    FitnessType,
    GAConfig,
    ImmigrationType,
    load_config,
    save_config,
)


def test_defaults_are_valid():
    config = GAConfig().validate()
    assert config.population_size == 30
    assert config.crossover_type is CrossoverType.UNIFORM
    assert config.fitness_type is FitnessType.OUTWARD_ALIGNMENT


def test_enum_fields_accept_names_and_numbers():
    config = GAConfig(crossover_type='parallel-wise', immigration_type=1, fitness_type='1')
    assert config.crossover_type is CrossoverType.PARALLEL_WISE
    assert config.immigration_type is ImmigrationType.LEAST_DIVERSE
    assert config.fitness_type is FitnessType.MASS_CENTER_OFFSET


def test_unknown_enum_name():
    with pytest.raises(ValueError):
        GAConfig(crossover_type='sideways')


@pytest.mark.parametrize('field, value', [
    ('population_size', 2),
    ('n_parallels', 6),
    ('n_meridians', 3),
    ('radius', 0.0),
    ('mutation_max_distance', 0.1),
    ('crossover_rate', 1.5),
    ('immigration_size', 31),
    ('autointersection_step', 0.0),
    ('workers', 0),
    ('max_iterations', -1),
])
def test_validation(field, value):
    with pytest.raises(ValueError):
        GAConfig(**{field: value}).validate()


def test_load_yaml(tmp_path):
    path = tmp_path / 'run.yaml'
    path.write_text(
        'ga:\n'
        '  population_size: 12\n'
        '  crossover_type: continuous\n'
        '  seed: 4\n'
    )
    config = load_config(path)
    assert config.population_size == 12
    assert config.crossover_type is CrossoverType.CONTINUOUS
    assert config.seed == 4


def test_load_flat_yaml(tmp_path):
    path = tmp_path / 'flat.yaml'
    path.write_text('radius: 3.5\n')
    assert load_config(path).radius == 3.5


def test_unknown_key_rejected(tmp_path):
    path = tmp_path / 'bad.yaml'
    path.write_text('population: 12\n')
    with pytest.raises(ValueError, match='population'):
        load_config(path)


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / 'absent.yaml')


def test_save_and_reload(tmp_path):
    path = tmp_path / 'saved.yaml'
    original = GAConfig(population_size=8, immigration_type='least_diverse', seed=7)
    save_config(original, path)
    data = yaml.safe_load(path.read_text())
    assert data['immigration_type'] == 'least_diverse'
    assert load_config(path) == original
