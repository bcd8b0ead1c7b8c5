#!/usr/bin/env python3
"""
Data Preprocessing Module
=========================
Converts the raw NCHS county drug-poisoning CSV into a cleaned Parquet file.

This module:
1. Reads the fixed-schema CSV with identifier columns kept as text
2. Cleans the population (thousands separators) and FIPS (zero padding) columns
3. Derives estimated deaths from the modeled rate
4. Converts the cleaned table to Parquet for efficient storage
5. Provides schema and statistical analysis of the dataset
"""

from pathlib import Path
from datetime import datetime
from typing import Optional
import numpy as np
import pandas as pd

from ..config import PipelineConfig, load_config
from ..console import print_section, print_subsection, stage_log


RATE_BASE = 100_000

# Source column -> cleaned column
COLUMN_MAP = {
    'FIPS': 'fips',
    'Year': 'year',
    'State': 'state',
    'FIPS State': 'state_fips',
    'County': 'county',
    'Population': 'population',
    'Model-based Death Rate': 'death_rate',
    'Standard Deviation': 'rate_sd',
    'Lower Confidence Limit': 'rate_lower',
    'Upper Confidence Limit': 'rate_upper',
    'Urban/Rural Category': 'urbanization',
    'Census Division': 'census_division',
}

REQUIRED_COLUMNS = list(COLUMN_MAP)

RATE_COLUMNS = ['death_rate', 'rate_sd', 'rate_lower', 'rate_upper']

TEXT_DTYPES = {
    'FIPS': str,
    'FIPS State': str,
    'Population': str,
    'State': str,
    'County': str,
    'Urban/Rural Category': str,
}


def load_raw_records(path: Path) -> pd.DataFrame:
    """Read the source CSV, keeping identifier and population columns as text."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Mortality CSV not found: {path}")

    print(f"Reading dataset from: {path.name}")
    df = pd.read_csv(path, dtype=TEXT_DTYPES)
    print(f"  Records: {len(df):,}")
    print(f"  Columns: {list(df.columns)}")
    return df


def validate_columns(df: pd.DataFrame) -> None:
    """Raise ValueError listing every required source column that is missing."""
    missing = [col for col in REQUIRED_COLUMNS if col not in df.columns]
    if missing:
        raise ValueError(f"Mortality CSV is missing required columns: {missing}")


def clean_population(series: pd.Series) -> pd.Series:
    """Strip thousands separators and whitespace, convert to integers."""
    cleaned = (
        series.astype(str)
        .str.replace(',', '', regex=False)
        .str.strip()
    )
    values = pd.to_numeric(cleaned, errors='raise')
    return values.round().astype(np.int64)


def clean_fips(series: pd.Series, width: int) -> pd.Series:
    """
    Normalise numeric-looking FIPS codes to zero-padded strings.

    Handles ints (1001), strings ("1001", " 01001 ") and floats read from
    CSV (1001.0). Missing codes raise ValueError.
    """
    missing = series.isna() | series.astype(str).str.strip().isin(['', 'nan', 'None'])
    if missing.any():
        raise ValueError(f"{int(missing.sum())} rows have no FIPS code")

    text = series.astype(str).str.strip()
    text = text.str.replace(r'\.0+$', '', regex=True)
    return text.str.zfill(width)


def clean_records(df: pd.DataFrame) -> pd.DataFrame:
    """Validate, rename and clean a raw record table."""
    validate_columns(df)

    clean = df[REQUIRED_COLUMNS].rename(columns=COLUMN_MAP).copy()

    clean['fips'] = clean_fips(clean['fips'], width=5)
    clean['state_fips'] = clean_fips(clean['state_fips'], width=2)
    clean['population'] = clean_population(clean['population'])
    clean['year'] = pd.to_numeric(clean['year']).astype(int)
    clean['census_division'] = pd.to_numeric(clean['census_division'], errors='coerce')

    for col in RATE_COLUMNS:
        clean[col] = pd.to_numeric(clean[col], errors='coerce').astype(float)

    clean['estimated_deaths'] = clean['death_rate'] * clean['population'] / RATE_BASE

    return clean.sort_values(['fips', 'year']).reset_index(drop=True)


def convert_dataset_to_parquet(config: PipelineConfig, force: bool = False) -> bool:
    """Clean the source CSV and save it as Parquet"""
    print_subsection("Converting Dataset CSV to Parquet")

    dataset_csv = config.get_source_csv_path()
    dataset_parquet = config.get_records_path()

    if dataset_parquet.exists() and not force:
        print(f"✓ Parquet already exists: {dataset_parquet.name}")
        print("  Skipping conversion.")
        return False

    df = clean_records(load_raw_records(dataset_csv))

    dataset_parquet.parent.mkdir(parents=True, exist_ok=True)
    print(f"\nSaving to Parquet format: {dataset_parquet.name}")
    df.to_parquet(dataset_parquet, engine='pyarrow', compression='snappy', index=False)

    print("✓ Dataset successfully cleaned and converted to Parquet")
    print(f"  Records: {len(df):,}")
    return True


def load_records(config: PipelineConfig) -> pd.DataFrame:
    """Load the cleaned records, restricted to the configured years"""
    records_path = config.get_records_path()
    if not records_path.exists():
        raise FileNotFoundError(
            f"Cleaned records not found: {records_path} (run the preprocessing stage first)"
        )

    df = pd.read_parquet(records_path)
    if config.analysis.years:
        df = df[df['year'].isin(config.analysis.years)].reset_index(drop=True)
    return df


def analyze_dataset(df: pd.DataFrame):
    """Print a comprehensive description of the cleaned dataset"""
    print_section("COMPREHENSIVE DATASET ANALYSIS")

    print_subsection("1. Basic Dataset Information")
    print(f"Shape: {df.shape[0]:,} rows × {df.shape[1]} columns")
    print(f"Memory Usage: {df.memory_usage(deep=True).sum() / (1024**2):.2f} MB")

    print_subsection("2. Coverage")
    print(f"Years: {df['year'].min()} to {df['year'].max()} ({df['year'].nunique()} years)")
    print(f"Counties: {df['fips'].nunique():,}")
    print(f"States: {df['state'].nunique()}")

    per_year = df.groupby('year')['fips'].nunique()
    if per_year.nunique() > 1:
        print("⚠ County count differs between years:")
        print(per_year.to_string())

    print_subsection("3. Data Quality Assessment")
    missing_counts = df.isnull().sum()
    total_missing = missing_counts.sum()
    total_cells = df.shape[0] * df.shape[1]
    print(f"  Total Missing Values: {total_missing:,} ({total_missing/total_cells*100:.2f}% of all cells)")

    cols_with_missing = missing_counts[missing_counts > 0]
    if len(cols_with_missing) > 0:
        print(f"  Columns with Missing Data: {len(cols_with_missing)}")
        print(cols_with_missing.to_string())
    else:
        print("  ✓ No missing values detected")

    duplicated = df.duplicated(subset=['fips', 'year']).sum()
    if duplicated:
        print(f"  ⚠ Duplicate county-year rows: {duplicated}")

    non_positive = (df['population'] <= 0).sum()
    if non_positive:
        print(f"  ⚠ Rows with non-positive population: {non_positive}")

    print_subsection("4. Death Rate Distribution (per 100,000)")
    print(df['death_rate'].describe().round(2).to_string())

    print_subsection("5. Urbanization Categories")
    print(df.groupby('urbanization')['fips'].nunique().to_string())


def run_preprocessing(config: Optional[PipelineConfig] = None, force: bool = False):
    """
    Main execution function for data preprocessing.

    Args:
        config: PipelineConfig instance. If None, loads from default.
        force: Rebuild the Parquet file even if it already exists.
    """
    if config is None:
        config = load_config()

    config.paths.ensure_dirs()
    results_dir = config.get_results_subdir("dataset_documentation")
    timestamp = datetime.now().strftime(config.logging.get("timestamp_format", "%Y%m%d_%H%M%S"))
    log_file = results_dir / f"dataset_info_{timestamp}.txt"

    with stage_log(log_file):
        print_section("DATA PREPROCESSING PIPELINE")
        print(f"Execution Time: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
        print(config.summary())

        print_section("STEP 1: Dataset Conversion")
        convert_dataset_to_parquet(config, force=force)

        analyze_dataset(load_records(config))

        print_section("PIPELINE COMPLETED SUCCESSFULLY")
        print(f"Output Log Saved: {log_file}")


if __name__ == "__main__":
    run_preprocessing()
