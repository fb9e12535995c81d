"""Run configuration for the planet genetic algorithm."""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from enum import IntEnum
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from evoplanets.planet import CrossoverType


class ImmigrationType(IntEnum):
    RANDOM = 0
    LEAST_DIVERSE = 1


class FitnessType(IntEnum):
    OUTWARD_ALIGNMENT = 0
    MASS_CENTER_OFFSET = 1


_ENUM_FIELDS = {
    'crossover_type': CrossoverType,
    'immigration_type': ImmigrationType,
    'fitness_type': FitnessType,
}


def _parse_enum(enum_cls, value):
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        key = value.strip().upper().replace('-', '_').replace(' ', '_')
        try:
            return enum_cls[key]
        except KeyError:
            if key.isdigit():
                return enum_cls(int(key))
            choices = ', '.join(m.name.lower() for m in enum_cls)
            raise ValueError(f'unknown {enum_cls.__name__} {value!r}; expected one of {choices}')
    return enum_cls(int(value))


@dataclass
class GAConfig:
    """Every tunable of :class:`evoplanets.genetic.PlanetGA`."""

    population_size: int = 30
    n_parallels: int = 15
    n_meridians: int = 14
    radius: float = 2.0
    n_init_mutations: int = 20

    mutation_scale: float = 0.3
    mutation_min_distance: float = 0.3
    mutation_max_distance: float = 1.3
    mutation_attempts: int = 100
    adaptive_mutation_rate: bool = True

    crossover_type: CrossoverType = CrossoverType.UNIFORM
    crossover_rate: float = 0.5
    crossover_attempts: int = 100
    crossover_fallback_to_continuous: bool = True
    crossover_fallback_attempts: int = 100

    immigration_size: int = 0
    immigration_type: ImmigrationType = ImmigrationType.RANDOM
    immigration_replace_with_sphere: bool = False
    n_immigration_mutations: int = 20

    fitness_type: FitnessType = FitnessType.OUTWARD_ALIGNMENT
    distance_from_surface: float = 0.0
    gravity_sample_size: int = 32
    tubes_resolution: int = 32
    gravitational_constant: float = 1.0
    diversity_coefficient: float = 0.2

    diversity_limit: float = 0.1
    fitness_threshold: float = 0.001
    epoch_with_no_improvement: int = 100
    max_iterations: int = 1000

    autointersection_step: float = 0.03
    workers: int = 1
    seed: Optional[int] = None

    def __post_init__(self) -> None:
        for name, enum_cls in _ENUM_FIELDS.items():
            setattr(self, name, _parse_enum(enum_cls, getattr(self, name)))

    def validate(self) -> "GAConfig":
        """Raise ``ValueError`` on inconsistent settings; returns ``self``."""

        if self.population_size < 3:
            raise ValueError('population_size must be at least 3 for differential mutation')
        if self.n_parallels < 7:
            raise ValueError('n_parallels must be at least 7 to hold both plateaus')
        if self.n_meridians < 4:
            raise ValueError('n_meridians must be at least 4')
        if self.radius <= 0.0:
            raise ValueError('radius must be positive')
        if self.mutation_min_distance < 0.0 or self.mutation_max_distance < self.mutation_min_distance:
            raise ValueError('mutation distances must satisfy 0 <= min <= max')
        if not 0.0 <= self.crossover_rate <= 1.0:
            raise ValueError('crossover_rate must be within [0, 1]')
        for name in ('n_init_mutations', 'mutation_attempts', 'crossover_attempts',
                     'crossover_fallback_attempts', 'immigration_size',
                     'n_immigration_mutations', 'epoch_with_no_improvement', 'max_iterations'):
            if getattr(self, name) < 0:
                raise ValueError(f'{name} cannot be negative')
        if self.immigration_size > self.population_size:
            raise ValueError('immigration_size cannot exceed population_size')
        if self.gravity_sample_size < 1 or self.tubes_resolution < 1:
            raise ValueError('gravity_sample_size and tubes_resolution must be positive')
        if not 0.0 < self.autointersection_step <= 1.0:
            raise ValueError('autointersection_step must be within (0, 1]')
        if self.workers < 1:
            raise ValueError('workers must be at least 1')
        return self

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "GAConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f'unknown configuration keys: {", ".join(unknown)}')
        return cls(**dict(data)).validate()

    def to_mapping(self) -> Dict[str, Any]:
        data = asdict(self)
        for name in _ENUM_FIELDS:
            data[name] = getattr(self, name).name.lower()
        return data


def load_config(path: Path | str) -> GAConfig:
    """Read a YAML file; a top-level ``ga`` section is used when present."""

    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"configuration not found: {config_path}")
    with config_path.open("r", encoding="utf-8") as fp:
        data = yaml.safe_load(fp) or {}
    if not isinstance(data, Mapping):
        raise ValueError(f"{config_path}: expected a mapping at the top level")
    if 'ga' in data and isinstance(data['ga'], Mapping):
        data = data['ga']
    return GAConfig.from_mapping(data)


def save_config(config: GAConfig, path: Path | str) -> None:
    config_path = Path(path)
    with config_path.open("w", encoding="utf-8") as fp:
        yaml.safe_dump(config.to_mapping(), fp, sort_keys=False)


__all__ = ['GAConfig', 'ImmigrationType', 'FitnessType', 'CrossoverType', 'load_config', 'save_config']
