"""
Command-line interface: run the full fungal community report.
"""

import argparse
import logging
from pathlib import Path
from typing import Optional, Sequence

from .config import DEFAULT_PERMUTATIONS, DEFAULT_RESAMPLES
from .pipeline import make_report


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Fungal community convergence report - diversity, NMDS, PERMANOVA and bootstrapped centroid ratios",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  mycoconv-report --data-dir data/raw --outdir results/ --seed 42 --n-jobs -1

  mycoconv-report --data-dir data/raw --replay --outdir results/
        """
    )
    parser.add_argument(
        "--data-dir",
        default=None,
        help="Directory holding the raw CSV inputs (default: data/raw)"
    )
    parser.add_argument(
        "--outdir",
        default=None,
        help="Output directory for summary tables (default: data/processed)"
    )
    parser.add_argument(
        "--interim-dir",
        default=None,
        help="Directory for Parquet intermediates (default: data/interim)"
    )
    parser.add_argument(
        "--resamples",
        type=int,
        default=DEFAULT_RESAMPLES,
        help=f"Bootstrap resamples per community (default: {DEFAULT_RESAMPLES})"
    )
    parser.add_argument(
        "--permutations",
        type=int,
        default=DEFAULT_PERMUTATIONS,
        help=f"PERMANOVA permutations (default: {DEFAULT_PERMUTATIONS})"
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Root random seed (default: fresh entropy)"
    )
    parser.add_argument(
        "--n-jobs",
        type=int,
        default=1,
        help="Parallel workers for the bootstrap, -1 for all cores (default: 1)"
    )
    parser.add_argument(
        "--replay",
        action="store_true",
        help="Summarise a precomputed bootstrap results table instead of resampling"
    )
    parser.add_argument(
        "--bootstrap-results",
        default=None,
        help="Precomputed bootstrap CSV used with --replay (default: <data-dir>/bootstrap_results.csv)"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Log debug messages"
    )
    return parser


def main(argv: Optional[Sequence[str]] = None) -> None:
    """
    Main CLI entry point.

    Runs every analysis stage and writes the summary tables as CSV.
    """
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    reports = make_report(
        data_dir=Path(args.data_dir) if args.data_dir else None,
        out_dir=Path(args.outdir) if args.outdir else None,
        interim_dir=Path(args.interim_dir) if args.interim_dir else None,
        resamples=args.resamples,
        permutations=args.permutations,
        seed=args.seed,
        n_jobs=args.n_jobs,
        replay=args.replay,
        bootstrap_path=Path(args.bootstrap_results) if args.bootstrap_results else None,
    )

    print("\n" + "=" * 60)
    print("CONVERGENCE SUMMARY")
    print("=" * 60)
    print(reports["convergence_summary"].to_string(index=False))
    print(f"\n{len(reports)} tables written.")


if __name__ == "__main__":
    main()
