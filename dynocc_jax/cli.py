"""
Command line entry point for dynocc-jax.

Runs the simulate, fit, select and summarize pipeline and writes the results
to an output directory.
"""

import argparse
import sys
from typing import List, Optional

from .config.settings import DynOccConfig, LogLevel
from .core.api import run_pipeline
from .core.exceptions import DynOccError
from .core.export import export_pipeline_results
from .utils.logging import get_logger, setup_logging


logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dynocc-jax",
        description="Simulate, fit and compare dynamic occupancy models",
    )
    parser.add_argument("--config", help="YAML configuration file")
    parser.add_argument("--sites", type=int, help="Number of sites")
    parser.add_argument("--years", type=int, help="Number of primary periods (years)")
    parser.add_argument("--occasions", type=int, help="Secondary occasions per year")
    parser.add_argument("--seed", type=int, help="Random seed")
    parser.add_argument("--bootstrap-trials", type=int, help="Site bootstrap samples for standard errors")
    parser.add_argument("--gof-simulations", type=int, help="Parametric bootstrap simulations for goodness of fit")
    parser.add_argument("--workers", type=int, help="Threads for goodness-of-fit refits")
    parser.add_argument("--output-dir", help="Output directory for results")
    parser.add_argument(
        "--log-level",
        choices=[level.value for level in LogLevel],
        help="Logging level",
    )
    return parser


def config_from_args(args: argparse.Namespace) -> DynOccConfig:
    """Build the configuration: file, then environment, then command line."""
    overrides = {}
    survey = {
        key: value
        for key, value in (
            ("site_count", args.sites),
            ("year_count", args.years),
            ("occasions_per_year", args.occasions),
        )
        if value is not None
    }
    analysis = {
        key: value
        for key, value in (
            ("bootstrap_trials", args.bootstrap_trials),
            ("gof_simulations", args.gof_simulations),
            ("n_workers", args.workers),
        )
        if value is not None
    }
    if survey:
        overrides["survey"] = survey
    if analysis:
        overrides["analysis"] = analysis
    if args.seed is not None:
        overrides["seed"] = args.seed
    if args.output_dir is not None:
        overrides["output_directory"] = args.output_dir
    if args.log_level is not None:
        overrides["logging"] = {"level": args.log_level}

    return DynOccConfig(config_file=args.config, **overrides)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point with command line arguments."""
    args = build_parser().parse_args(argv)

    try:
        config = config_from_args(args)
    except (DynOccError, FileNotFoundError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    setup_logging(level=config.logging.level)

    try:
        result = run_pipeline(config)
        export_pipeline_results(result, config.output_directory)
    except DynOccError as e:
        logger.error(f"Pipeline failed: {e}")
        return 1
    except KeyboardInterrupt:
        logger.warning("Pipeline interrupted by user")
        return 130

    return 0


if __name__ == "__main__":
    sys.exit(main())
