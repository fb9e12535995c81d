"""I/O utilities for evoplanets."""

from .population import PlanetsPopulation, load_population, save_population

__all__ = ['PlanetsPopulation', 'load_population', 'save_population']
