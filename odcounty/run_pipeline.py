#!/usr/bin/env python3
"""
odcounty Pipeline Runner
========================
Main entry point for running the complete data processing and analysis pipeline.

Usage:
    # Run full pipeline with default config
    python -m odcounty.run_pipeline

    # Run full pipeline with custom config
    python -m odcounty.run_pipeline --config path/to/config.yaml

    # Run specific stages
    python -m odcounty.run_pipeline --stages preprocessing analysis

    # Show current config
    python -m odcounty.run_pipeline --show-config

Available stages:
    1. preprocessing: CSV cleaning, Parquet conversion, county shape join
    2. analysis: National/state/county aggregates and trends
    3. spatial: Contiguity weights and Getis-Ord Gi* hot spots
    4. visualization: Choropleths and interactive hot spot map
"""

import argparse
import sys
import traceback
from datetime import datetime
from typing import List, Optional

from .config import PipelineConfig, load_config


def run_preprocessing(config: PipelineConfig, force: bool = False):
    """Run preprocessing stage"""
    print("\n" + "=" * 60)
    print("STAGE 1: PREPROCESSING")
    print("=" * 60)

    from .preprocessing import run_preprocessing, run_shapes

    print("\n[1.1] Data Preprocessing (CSV → Parquet)...")
    run_preprocessing(config, force=force)

    print("\n[1.2] County Shapes and Join...")
    run_shapes(config)


def run_analysis(config: PipelineConfig):
    """Run analysis stage"""
    print("\n" + "=" * 60)
    print("STAGE 2: DATA ANALYSIS")
    print("=" * 60)

    from .analysis import run_eda, run_trends

    print("\n[2.1] Exploratory Data Analysis...")
    run_eda(config)

    print("\n[2.2] Trend Analysis...")
    run_trends(config)


def run_spatial(config: PipelineConfig):
    """Run spatial stage"""
    print("\n" + "=" * 60)
    print("STAGE 3: HOT SPOT ANALYSIS")
    print("=" * 60)

    from .analysis import run_hotspot_analysis

    print("\n[3.1] Getis-Ord Gi*...")
    run_hotspot_analysis(config)


def run_visualization(config: PipelineConfig):
    """Run visualization stage"""
    print("\n" + "=" * 60)
    print("STAGE 4: VISUALIZATION")
    print("=" * 60)

    from .visualization import generate_all_maps

    print("\n[4.1] Generating Maps...")
    generate_all_maps(config)


STAGES = {
    'preprocessing': run_preprocessing,
    'analysis': run_analysis,
    'spatial': run_spatial,
    'visualization': run_visualization,
}

STAGE_ORDER = ['preprocessing', 'analysis', 'spatial', 'visualization']


def run_pipeline(
    config_path: Optional[str] = None,
    stages: Optional[List[str]] = None,
    force: bool = False
):
    """
    Run the odcounty pipeline.

    Args:
        config_path: Path to config file. If None, uses default.
        stages: List of stages to run. If None, runs all.
        force: Rebuild the cleaned Parquet file even if it exists.
    """
    config = load_config(config_path)
    config.paths.ensure_dirs()

    print("=" * 70)
    print("ODCOUNTY - COUNTY DRUG OVERDOSE MORTALITY PIPELINE")
    print("=" * 70)
    print(f"Execution started: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print("-" * 70)

    # Determine stages to run
    if stages is None:
        stages = STAGE_ORDER
    else:
        for stage in stages:
            if stage not in STAGES:
                print(f"Error: Unknown stage '{stage}'")
                print(f"Available stages: {', '.join(STAGE_ORDER)}")
                sys.exit(1)
        stages = [stage for stage in STAGE_ORDER if stage in stages]

    print(f"Stages to run: {', '.join(stages)}")

    for stage in stages:
        try:
            if stage == 'preprocessing':
                STAGES[stage](config, force=force)
            else:
                STAGES[stage](config)
        except Exception as e:
            print(f"\n✗ ERROR in stage '{stage}': {e}")
            traceback.print_exc()
            sys.exit(1)

    # Final summary
    print("\n" + "=" * 70)
    print("PIPELINE COMPLETED SUCCESSFULLY")
    print("=" * 70)
    print(f"Execution finished: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print(f"\nOutput locations:")
    print(f"  Data: {config.paths.data}")
    print(f"  Results: {config.paths.results}")
    print(f"  Assets: {config.paths.assets}")


def main(argv: Optional[List[str]] = None):
    """CLI entry point"""
    parser = argparse.ArgumentParser(
        description="odcounty Pipeline Runner",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run full pipeline
  python -m odcounty.run_pipeline

  # Run with custom config
  python -m odcounty.run_pipeline --config config/rook.yaml

  # Run specific stages
  python -m odcounty.run_pipeline --stages spatial visualization

  # Show current config
  python -m odcounty.run_pipeline --show-config
"""
    )

    parser.add_argument(
        '--config', '-c',
        help='Path to configuration YAML file'
    )

    parser.add_argument(
        '--stages', '-s',
        nargs='+',
        choices=STAGE_ORDER,
        help='Stages to run (default: all)'
    )

    parser.add_argument(
        '--force',
        action='store_true',
        help='Rebuild the cleaned Parquet file even if it exists'
    )

    parser.add_argument(
        '--show-config',
        action='store_true',
        help='Show current configuration and exit'
    )

    parser.add_argument(
        '--list-stages',
        action='store_true',
        help='List available stages and exit'
    )

    args = parser.parse_args(argv)

    if args.list_stages:
        print("Available pipeline stages:")
        for i, stage in enumerate(STAGE_ORDER, 1):
            print(f"  {i}. {stage}")
        sys.exit(0)

    if args.show_config:
        config = load_config(args.config)
        print(config.summary())
        sys.exit(0)

    run_pipeline(
        config_path=args.config,
        stages=args.stages,
        force=args.force
    )


if __name__ == "__main__":
    main()
