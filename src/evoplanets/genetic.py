"""Differential-evolution style genetic algorithm over :class:`Planet` surfaces.

A run moves through four states::

    UNINITIALIZED -> INITIALIZING -> READY -> TERMINATED

:meth:`PlanetGA.initialize` is called repeatedly; every call randomises one
individual so a caller can interleave progress reporting or cancellation.
:meth:`PlanetGA.loop` then runs one epoch at a time.  Each epoch works on new
lists and only swaps them in at the very end, so a failure half way through
(for example :class:`DegenerateFitnessError`) leaves the committed
population, fitness values and histories exactly as they were.

Planets in a committed population are never modified afterwards: mutation
works on copies and crossover builds new children.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from enum import Enum
from typing import Generic, List, Optional, Protocol, Sequence, Tuple, TypeVar, runtime_checkable

import numpy as np
from loguru import logger

from evoplanets.config import FitnessType, GAConfig, ImmigrationType
from evoplanets.errors import DegenerateFitnessError, GAStateError
from evoplanets.gravity import GravityComputer
from evoplanets.io.population import PlanetsPopulation
from evoplanets.mesh import tessellate
from evoplanets.planet import Planet

T = TypeVar('T')


@runtime_checkable
class EvolutionaryAlgorithm(Protocol[T]):
    """Capabilities an evolution engine offers over individuals of type ``T``."""

    def mutation(self, population: Sequence[T]) -> List[T]: ...

    def crossover(self, parents: Sequence[T], mutants: Sequence[T]) -> List[T]: ...

    def selection(self, parents: Sequence[T], parent_fitness: Sequence[float],
                  offspring: Sequence[T]) -> Tuple[List[T], List[float], List[float]]: ...

    def fitness(self, individual: T) -> float: ...


class GAState(Enum):
    UNINITIALIZED = 'uninitialized'
    INITIALIZING = 'initializing'
    READY = 'ready'
    TERMINATED = 'terminated'


@dataclass(frozen=True)
class EpochStats:
    epoch: int
    mean_fitness: float
    mean_error: float
    mean_diversity: float
    best_fitness: float


@dataclass(frozen=True)
class PopulationSnapshot(Generic[T]):
    """Immutable view of a committed population."""

    epoch: int
    state: GAState
    planets: Tuple[T, ...] = ()
    fitness: Tuple[float, ...] = ()
    diversities: Tuple[float, ...] = ()
    initialized: int = 0

    @property
    def best_index(self) -> Optional[int]:
        if not self.fitness:
            return None
        return int(np.argmax(self.fitness))


def _normalize(vectors: np.ndarray) -> np.ndarray:
    norms = np.linalg.norm(vectors, axis=-1, keepdims=True)
    with np.errstate(divide='ignore', invalid='ignore'):
        return np.where(norms > 0.0, vectors / norms, np.nan)


class PlanetGA:
    """Evolves a population of planets toward self-consistent gravity.

    The fitness of a planet is the mean alignment between its inward surface
    normal and the gravity its own body produces at the surface, so a perfect
    score of ``1`` means the ground is level everywhere.
    """

    def __init__(self, config: Optional[GAConfig] = None,
                 rng: Optional[np.random.Generator] = None, **overrides):
        config = config if config is not None else GAConfig()
        if overrides:
            config = replace(config, **overrides)
        self.config = config.validate()
        self.rng = rng if rng is not None else np.random.default_rng(config.seed)

        self.state = GAState.UNINITIALIZED
        self.epoch = 0
        self.population: List[Planet] = []
        self.fitness_values: List[float] = []
        self.diversities: List[float] = []
        self.history: List[EpochStats] = []
        self.best_so_far = float('-inf')
        self.termination_reason: Optional[str] = None
        self._no_improvement = 0
        self._initialized = 0

    # ------------------------------------------------------------------
    # state

    @property
    def step(self) -> float:
        return self.config.autointersection_step

    @property
    def is_ready(self) -> bool:
        return self.state is GAState.READY

    @property
    def is_terminated(self) -> bool:
        return self.state is GAState.TERMINATED

    def _sphere(self) -> Planet:
        c = self.config
        return Planet.sphere(c.n_parallels, c.n_meridians, c.radius)

    def initialize(self) -> bool:
        """Advance initialisation by one individual.

        Returns ``True`` while more calls are needed and ``False`` once the
        population is evaluated and the algorithm is ``READY``.
        """

        if self.state in (GAState.READY, GAState.TERMINATED):
            return False
        c = self.config
        if self.state is GAState.UNINITIALIZED:
            self.population = [self._sphere() for _ in range(c.population_size)]
            self._initialized = 0
            self.state = GAState.INITIALIZING
            logger.info(f"[PlanetGA] initialising {c.population_size} planets "
                        f"({c.n_parallels}x{c.n_meridians}, radius {c.radius})")

        if self._initialized < c.population_size:
            k = self._initialized
            planet = self.population[k].copy()
            accepted = 0
            for _ in range(c.n_init_mutations):
                if planet.mutate(c.mutation_min_distance, c.mutation_max_distance, self.step, self.rng):
                    accepted += 1
            planet.try_operator(planet.grid, self.step)
            logger.debug(f"[PlanetGA] planet {k}: "
                         f"{accepted}/{c.n_init_mutations} initial mutations accepted")
            # published snapshots hold the old list
            self.population = [*self.population[:k], planet, *self.population[k + 1:]]
            self._initialized += 1
            if self._initialized < c.population_size:
                return True

        self._finish_initialization()
        return False

    def _finish_initialization(self) -> None:
        fitness = self.evaluate_fitness(self.population)
        self.fitness_values = fitness
        self.diversities = Planet.min_diversities(self.population)
        self.epoch = 0
        self.history = []
        self._no_improvement = 0
        self.best_so_far = float('-inf')
        self._record()
        self.state = GAState.READY
        logger.info(f"[PlanetGA] ready: mean fitness {self.mean_fitness:.4f}, "
                    f"best {self.best_fitness:.4f}")

    def init_by_population(self, snapshot: PlanetsPopulation) -> None:
        """Start ``READY`` from a loaded population file."""

        if len(snapshot.planets) < 3:
            raise ValueError('a population needs at least 3 planets')
        shapes = {(p.parallel_count, p.meridian_count, p.degree_u, p.degree_v) for p in snapshot.planets}
        if len(shapes) != 1:
            raise ValueError(f'planets in the population have different grids: {sorted(shapes)}')
        self.config = replace(
            self.config,
            population_size=len(snapshot.planets),
            n_parallels=snapshot.parallel_count or snapshot.planets[0].parallel_count,
            n_meridians=snapshot.meridian_count or snapshot.planets[0].meridian_count,
            radius=snapshot.radius,
        ).validate()
        self.population = [planet.copy() for planet in snapshot.planets]
        self._initialized = len(self.population)
        self.termination_reason = None
        logger.info(f"[PlanetGA] resuming from {len(self.population)} stored planets")
        self._finish_initialization()

    # ------------------------------------------------------------------
    # fitness

    def fitness(self, individual: Planet) -> float:
        c = self.config
        step = 1.0 / c.gravity_sample_size
        pairs = Planet.sample_pairs(step, step)
        positions = individual.positions(pairs)
        normals = individual.normals(pairs)
        computer = GravityComputer(tessellate(individual, step), c.tubes_resolution,
                                   c.gravitational_constant)

        if c.fitness_type is FitnessType.MASS_CENTER_OFFSET:
            center = computer.mass_center()
            if center is None:
                positions = np.full_like(positions, np.nan)
            else:
                positions = positions + c.distance_from_surface * _normalize(center - positions)

        gravity = computer.fields(positions)
        values = np.sum(_normalize(-normals) * _normalize(gravity), axis=1)
        valid = ~np.isnan(values)
        if not valid.any():
            raise DegenerateFitnessError(len(values))
        return float(values[valid].mean())

    def _indexed_fitness(self, item: Tuple[int, Planet]) -> float:
        index, planet = item
        try:
            return self.fitness(planet)
        except DegenerateFitnessError as exc:
            raise DegenerateFitnessError(exc.samples, index) from exc

    def evaluate_fitness(self, planets: Sequence[Planet]) -> List[float]:
        items = list(enumerate(planets))
        if self.config.workers == 1 or len(items) < 2:
            return [self._indexed_fitness(item) for item in items]
        with ThreadPoolExecutor(max_workers=self.config.workers,
                                thread_name_prefix='evoplanets-fitness') as pool:
            return list(pool.map(self._indexed_fitness, items))

    # ------------------------------------------------------------------
    # operators

    def _distinct_indices(self, i: int, n: int) -> Tuple[int, int, int]:
        r1 = i
        while r1 == i:
            r1 = int(self.rng.integers(n))
        r2 = r1
        while r2 == r1:
            r2 = int(self.rng.integers(n))
        r3 = r1
        while r3 in (r1, r2):
            r3 = int(self.rng.integers(n))
        return r1, r2, r3

    def _rate(self, base: float, attempt: int, attempts: int) -> float:
        if not self.config.adaptive_mutation_rate or attempts == 0:
            return base
        return base * (attempts - attempt) / attempts

    def mutation(self, population: Sequence[Planet]) -> List[Planet]:
        c = self.config
        mutants: List[Planet] = []
        fallbacks = 0
        for i in range(len(population)):
            mutant = None
            for attempt in range(c.mutation_attempts):
                r1, r2, r3 = self._distinct_indices(i, len(population))
                candidate = population[r1].copy()
                scale = self._rate(c.mutation_scale, attempt, c.mutation_attempts)
                if candidate.differential_mutate(population[r2], population[r3], scale, self.step):
                    mutant = candidate
                    break
            if mutant is None:
                fallbacks += 1
                mutant = self._sphere()
            mutants.append(mutant)
        if fallbacks:
            logger.debug(f"[PlanetGA] {fallbacks} mutants replaced by spheres")
        return mutants

    def _offspring(self, parent: Planet, mutant: Planet) -> Planet:
        c = self.config
        for attempt in range(c.crossover_attempts):
            rate = self._rate(c.crossover_rate, attempt, c.crossover_attempts)
            child = parent.crossover(mutant, c.crossover_type, rate, self.step, self.rng)
            if child is not None:
                return child
        if c.crossover_fallback_to_continuous:
            for attempt in range(c.crossover_fallback_attempts):
                rate = self._rate(c.crossover_rate, attempt, c.crossover_fallback_attempts)
                child = parent.continuous_crossover(mutant, rate, self.step)
                if child is not None:
                    return child
        child = parent.copy()
        child.mutate(c.mutation_min_distance, c.mutation_max_distance, self.step, self.rng)
        return child

    def crossover(self, parents: Sequence[Planet], mutants: Sequence[Planet]) -> List[Planet]:
        return [self._offspring(parent, mutant) for parent, mutant in zip(parents, mutants)]

    def selection(self, parents: Sequence[Planet], parent_fitness: Sequence[float],
                  offspring: Sequence[Planet]) -> Tuple[List[Planet], List[float], List[float]]:
        """Keep the better of parent and offspring in every slot.

        The score is ``fitness - diversity_coefficient * diversity`` where
        diversity is the distance to the nearest neighbour in its own
        generation.  Ties go to the offspring.
        """

        c = self.config
        offspring_fitness = self.evaluate_fitness(offspring)
        parent_div = Planet.min_diversities(parents)
        offspring_div = Planet.min_diversities(offspring)
        survivors: List[Planet] = []
        fitness: List[float] = []
        replaced = 0
        for i in range(len(parents)):
            parent_score = parent_fitness[i] - c.diversity_coefficient * parent_div[i]
            child_score = offspring_fitness[i] - c.diversity_coefficient * offspring_div[i]
            if child_score >= parent_score:
                survivors.append(offspring[i])
                fitness.append(offspring_fitness[i])
                replaced += 1
            else:
                survivors.append(parents[i])
                fitness.append(parent_fitness[i])
        logger.debug(f"[PlanetGA] selection kept {replaced}/{len(parents)} offspring")
        return survivors, fitness, Planet.min_diversities(survivors)

    def handle_immigration(self, population: Sequence[Planet], fitness: Sequence[float],
                           diversities: Sequence[float]) -> Tuple[List[Planet], List[float]]:
        c = self.config
        population = list(population)
        fitness = list(fitness)
        if c.immigration_size == 0:
            return population, fitness
        if c.immigration_type is ImmigrationType.LEAST_DIVERSE:
            slots = [int(k) for k in np.argsort(diversities, kind='stable')[:c.immigration_size]]
        else:
            slots = [int(k) for k in self.rng.choice(len(population), c.immigration_size, replace=False)]
        for slot in slots:
            immigrant = self._sphere() if c.immigration_replace_with_sphere else population[slot].copy()
            for _ in range(c.n_immigration_mutations):
                immigrant.mutate(c.mutation_min_distance, c.mutation_max_distance, self.step, self.rng)
            population[slot] = immigrant
        fresh = self.evaluate_fitness([population[slot] for slot in slots])
        for slot, value in zip(slots, fresh):
            fitness[slot] = value
        logger.debug(f"[PlanetGA] immigrants placed in slots {slots}")
        return population, fitness

    # ------------------------------------------------------------------
    # epoch

    def loop(self) -> None:
        """Run one epoch; raises :class:`GAStateError` unless ``READY``."""

        if self.state is not GAState.READY:
            raise GAStateError(f'loop() needs a READY algorithm, state is {self.state.name}')
        parents, parent_fitness = self.handle_immigration(
            self.population, self.fitness_values, self.diversities
        )
        mutants = self.mutation(parents)
        offspring = self.crossover(parents, mutants)
        population, fitness, diversities = self.selection(parents, parent_fitness, offspring)

        previous = self.history[-1].mean_fitness if self.history else None
        self.population = population
        self.fitness_values = fitness
        self.diversities = diversities
        self.epoch += 1
        stats = self._record()
        if previous is not None and abs(stats.mean_fitness - previous) < self.config.fitness_threshold:
            self._no_improvement += 1
        else:
            self._no_improvement = 0
        logger.info(f"[PlanetGA] epoch {self.epoch}: mean {stats.mean_fitness:.4f} "
                    f"+/- {stats.mean_error:.4f}, best {stats.best_fitness:.4f}, "
                    f"diversity {stats.mean_diversity:.4f}")
        self._check_termination()

    def _record(self) -> EpochStats:
        values = np.asarray(self.fitness_values, dtype=float)
        stats = EpochStats(
            epoch=self.epoch,
            mean_fitness=float(values.mean()),
            mean_error=float(values.std()),
            mean_diversity=float(np.mean(self.diversities)) if self.diversities else 0.0,
            best_fitness=float(values.max()),
        )
        self.history.append(stats)
        self.best_so_far = max(self.best_so_far, stats.best_fitness)
        return stats

    def _check_termination(self) -> None:
        c = self.config
        reason = None
        if self.epoch > c.max_iterations:
            reason = f'reached {c.max_iterations} iterations'
        elif self.mean_diversity < c.diversity_limit:
            reason = f'mean diversity {self.mean_diversity:.4f} below {c.diversity_limit}'
        elif self._no_improvement >= c.epoch_with_no_improvement:
            reason = f'no improvement for {self._no_improvement} epochs'
        if reason is not None:
            self.state = GAState.TERMINATED
            self.termination_reason = reason
            logger.info(f"[PlanetGA] terminated at epoch {self.epoch}: {reason}")

    # ------------------------------------------------------------------
    # diagnostics

    @property
    def best(self) -> Optional[Planet]:
        if not self.fitness_values:
            return None
        return self.population[int(np.argmax(self.fitness_values))]

    @property
    def best_fitness(self) -> float:
        return self.history[-1].best_fitness if self.history else float('nan')

    @property
    def mean_fitness(self) -> float:
        return self.history[-1].mean_fitness if self.history else float('nan')

    @property
    def mean_error(self) -> float:
        return self.history[-1].mean_error if self.history else float('nan')

    @property
    def mean_diversity(self) -> float:
        return self.history[-1].mean_diversity if self.history else float('nan')

    @property
    def mean_fitness_history(self) -> List[float]:
        return [s.mean_fitness for s in self.history]

    @property
    def mean_error_history(self) -> List[float]:
        return [s.mean_error for s in self.history]

    @property
    def mean_diversity_history(self) -> List[float]:
        return [s.mean_diversity for s in self.history]

    @property
    def best_fitness_history(self) -> List[float]:
        return [s.best_fitness for s in self.history]

    def snapshot(self) -> PopulationSnapshot:
        return PopulationSnapshot(
            epoch=self.epoch,
            state=self.state,
            planets=tuple(self.population),
            fitness=tuple(self.fitness_values),
            diversities=tuple(self.diversities),
            initialized=self._initialized,
        )

    def to_population(self) -> PlanetsPopulation:
        c = self.config
        return PlanetsPopulation(list(self.population), c.n_meridians, c.n_parallels, c.radius)

    def log(self) -> str:
        """Settings and per-epoch statistics as tab-separated text."""

        lines = [f'# {key}: {value}' for key, value in self.config.to_mapping().items()]
        lines.append('epoch\tmean_fitness\tmean_error\tmean_diversity\tbest_fitness')
        for s in self.history:
            lines.append(f'{s.epoch}\t{s.mean_fitness:.6f}\t{s.mean_error:.6f}\t'
                         f'{s.mean_diversity:.6f}\t{s.best_fitness:.6f}')
        if self.termination_reason:
            lines.append(f'# terminated: {self.termination_reason}')
        return '\n'.join(lines) + '\n'


__all__ = [
    'EvolutionaryAlgorithm',
    'GAState',
    'EpochStats',
    'PopulationSnapshot',
    'PlanetGA',
]
