"""
Command line front end for evoplanets.

Usage:
    python -m evoplanets run [--config FILE.yaml] [--epochs N] [--population-out FILE]
                             [--log-out FILE] [--seed S] [--resume FILE]
    python -m evoplanets inspect FILE.pop

Examples:
    # Evolve with the defaults for 50 epochs and keep the result
    python -m evoplanets run --epochs 50 --population-out planets.pop

    # Continue a stored run with a smaller sample grid
    python -m evoplanets run --config quick.yaml --resume planets.pop --epochs 10
"""

import argparse
import sys
from pathlib import Path

from loguru import logger

from evoplanets.config import GAConfig, load_config
from evoplanets.errors import EvoPlanetsError
from evoplanets.io.population import load_population
from evoplanets.logging_config import setup_logging


def cmd_run(args):
    """Initialise (or resume) a population and evolve it."""
    from evoplanets.genetic import PlanetGA
    from evoplanets.runner import EvolutionRunner

    try:
        config = load_config(args.config) if args.config else GAConfig().validate()
    except (OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    overrides = {}
    if args.seed is not None:
        overrides['seed'] = args.seed
    if args.workers is not None:
        overrides['workers'] = args.workers
    ga = PlanetGA(config, **overrides)

    with EvolutionRunner(ga) as runner:
        try:
            if args.resume:
                ga.init_by_population(load_population(args.resume))
            elif not runner.start_initialization().result():
                print("Initialisation stopped", file=sys.stderr)
                return 1
            done = runner.start_epochs(args.epochs).result()
        except KeyboardInterrupt:
            runner.request_stop()
            logger.warning("[cli] interrupted, waiting for the current step")
            done = None
        except EvoPlanetsError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1

    snapshot = ga.snapshot()
    if done is not None:
        print(f"Completed {done} epoch(s); state {snapshot.state.name.lower()}")
    if ga.history:
        print(f"Best fitness {ga.best_fitness:.6f} (best so far {ga.best_so_far:.6f}), "
              f"mean {ga.mean_fitness:.6f} +/- {ga.mean_error:.6f}")
    if ga.termination_reason:
        print(f"Terminated: {ga.termination_reason}")

    if args.population_out and ga.population:
        ga.to_population().save(args.population_out)
        print(f"Population written to {args.population_out}")
    if args.log_out:
        Path(args.log_out).write_text(ga.log(), encoding='utf-8')
        print(f"History written to {args.log_out}")
    return 0


def cmd_inspect(args):
    """Print a summary of a population file."""
    source = Path(args.file)
    if not source.exists():
        print(f"Error: File not found: {source}", file=sys.stderr)
        return 1
    try:
        population = load_population(source)
    except EvoPlanetsError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(f"Population: {source.name}")
    print(f"  planets:   {len(population)}")
    print(f"  parallels: {population.parallel_count}")
    print(f"  meridians: {population.meridian_count}")
    print(f"  radius:    {population.radius:g}")
    for index, planet in enumerate(population.planets):
        grid = planet.control_grid()
        extent = float(abs(grid).max()) if grid.size else 0.0
        print(f"  [{index:3d}] {grid.shape[0]}x{grid.shape[1]} "
              f"degrees ({planet.degree_u}, {planet.degree_v}) extent {extent:.4f}")
    return 0


def build_parser():
    parser = argparse.ArgumentParser(
        prog='python -m evoplanets',
        description='Evolve procedural B-spline planets toward level ground',
    )
    parser.add_argument('--log-level', default='INFO',
                        help='Logging level (DEBUG, INFO, WARNING, ...)')
    parser.add_argument('--log-file', metavar='FILE', help='Also write logs to FILE')

    subparsers = parser.add_subparsers(dest='action', required=True)

    run_parser = subparsers.add_parser('run', help='Evolve a population')
    run_parser.add_argument('-c', '--config', metavar='FILE', help='YAML configuration')
    run_parser.add_argument('-n', '--epochs', type=int, default=None,
                            help='Maximum number of epochs (default: until termination)')
    run_parser.add_argument('-o', '--population-out', metavar='FILE',
                            help='Write the final population snapshot')
    run_parser.add_argument('--log-out', metavar='FILE',
                            help='Write the tab-separated epoch history')
    run_parser.add_argument('--seed', type=int, help='Random seed')
    run_parser.add_argument('--workers', type=int, help='Fitness evaluation threads')
    run_parser.add_argument('--resume', metavar='FILE',
                            help='Start from a stored population instead of spheres')

    inspect_parser = subparsers.add_parser('inspect', help='Summarise a population file')
    inspect_parser.add_argument('file', help='Population snapshot (.pop)')
    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.log_level, args.log_file)

    if args.action == 'run':
        return cmd_run(args)
    elif args.action == 'inspect':
        return cmd_inspect(args)
    else:
        parser.print_help()
        return 1


if __name__ == '__main__':
    sys.exit(main())
