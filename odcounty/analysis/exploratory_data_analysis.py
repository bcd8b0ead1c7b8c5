#!/usr/bin/env python3
"""
Exploratory Data Analysis Module
================================
National, state, urbanization and census-division aggregates of the
county drug-poisoning death rates.

Analysis steps:
1. National trend - population-weighted rate and estimated deaths per year
2. State aggregates - per year, and a ranking for the map year
3. Urbanization and census division trends
4. Highest-rate counties and county rate change between two years

All aggregate rates are population weighted:
    rate = sum(estimated deaths) / sum(population) * 100,000
"""

from datetime import datetime
from pathlib import Path
from typing import Optional
import pandas as pd
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import seaborn as sns

from ..config import PipelineConfig, load_config
from ..console import print_section, print_subsection, stage_log
from ..preprocessing.data_preprocessing import RATE_BASE, load_records


def weighted_rate(frame: pd.DataFrame) -> float:
    """Population-weighted death rate of a group of county-years."""
    population = frame['population'].sum()
    if population <= 0:
        return float('nan')
    return frame['estimated_deaths'].sum() / population * RATE_BASE


def _aggregate(df: pd.DataFrame, keys: list) -> pd.DataFrame:
    grouped = df.groupby(keys)
    summary = grouped.agg(
        population=('population', 'sum'),
        estimated_deaths=('estimated_deaths', 'sum'),
        mean_county_rate=('death_rate', 'mean'),
        median_county_rate=('death_rate', 'median'),
        counties=('fips', 'nunique'),
    )
    summary['death_rate'] = summary['estimated_deaths'] / summary['population'] * RATE_BASE
    return summary.reset_index()


def national_by_year(df: pd.DataFrame) -> pd.DataFrame:
    """Per-year national population, estimated deaths and weighted rate."""
    return _aggregate(df, ['year'])


def state_by_year(df: pd.DataFrame) -> pd.DataFrame:
    """Per (state, year) aggregates."""
    return _aggregate(df, ['state', 'year'])


def state_summary(df: pd.DataFrame, year: int) -> pd.DataFrame:
    """States ranked by weighted rate for a single year."""
    year_df = df[df['year'] == year]
    if year_df.empty:
        raise ValueError(f"No records for year {year}")
    summary = _aggregate(year_df, ['state'])
    summary = summary.sort_values('death_rate', ascending=False).reset_index(drop=True)
    summary['rank'] = range(1, len(summary) + 1)
    return summary


def urbanization_by_year(df: pd.DataFrame) -> pd.DataFrame:
    """Weighted rate per (urbanization category, year)."""
    return _aggregate(df, ['urbanization', 'year'])


def division_by_year(df: pd.DataFrame) -> pd.DataFrame:
    """Weighted rate per (census division, year)."""
    return _aggregate(df, ['census_division', 'year'])


def top_counties(df: pd.DataFrame, year: int, n: int = 10) -> pd.DataFrame:
    """Highest-rate counties of a year."""
    year_df = df[df['year'] == year]
    columns = ['fips', 'county', 'state', 'population', 'death_rate',
               'rate_lower', 'rate_upper', 'urbanization']
    return (
        year_df.nlargest(n, 'death_rate')[columns]
        .reset_index(drop=True)
    )


def rate_change(df: pd.DataFrame, start_year: int, end_year: int) -> pd.DataFrame:
    """
    Per-county change in death rate between two years.

    Counties missing either year are dropped.
    """
    start = df[df['year'] == start_year].set_index('fips')
    end = df[df['year'] == end_year].set_index('fips')

    common = start.index.intersection(end.index)
    change = pd.DataFrame({
        'county': end.loc[common, 'county'],
        'state': end.loc[common, 'state'],
        f'rate_{start_year}': start.loc[common, 'death_rate'],
        f'rate_{end_year}': end.loc[common, 'death_rate'],
    })
    change['absolute_change'] = change[f'rate_{end_year}'] - change[f'rate_{start_year}']
    start_rate = change[f'rate_{start_year}']
    change['percent_change'] = (change['absolute_change'] / start_rate.where(start_rate != 0)) * 100
    return change.reset_index().sort_values('absolute_change', ascending=False).reset_index(drop=True)


def resolve_years(config: PipelineConfig, df: pd.DataFrame) -> tuple:
    """(baseline year, map year) from config, defaulting to the data range."""
    years = set(df['year'])
    baseline = config.analysis.baseline_year or int(min(years))
    target = config.analysis.map_year or int(max(years))
    for label, year in (('baseline_year', baseline), ('map_year', target)):
        if year not in years:
            raise ValueError(f"Configured {label} {year} is not in the data")
    return baseline, target


def plot_national_trend(national: pd.DataFrame, assets_dir: Path, dpi: int = 300):
    """Weighted rate and estimated deaths by year."""
    fig, ax1 = plt.subplots(figsize=(12, 6))
    ax1.plot(national['year'], national['death_rate'], marker='o', color='#b2182b',
             label='Population-weighted rate')
    ax1.plot(national['year'], national['median_county_rate'], marker='s', linestyle='--',
             color='#ef8a62', label='Median county rate')
    ax1.set_xlabel('Year')
    ax1.set_ylabel('Deaths per 100,000')

    ax2 = ax1.twinx()
    ax2.bar(national['year'], national['estimated_deaths'], alpha=0.2, color='grey',
            label='Estimated deaths')
    ax2.set_ylabel('Estimated deaths')

    lines = ax1.get_legend_handles_labels()
    bars = ax2.get_legend_handles_labels()
    ax1.legend(lines[0] + bars[0], lines[1] + bars[1], loc='upper left')
    ax1.set_title('U.S. Drug Poisoning Mortality by Year', fontsize=14, fontweight='bold')

    plt.tight_layout()
    path = assets_dir / 'national_trend.png'
    plt.savefig(path, dpi=dpi, bbox_inches='tight')
    plt.close()
    print(f"  Saved: {path}")


def plot_group_trend(table: pd.DataFrame, group: str, title: str, path: Path, dpi: int = 300):
    """One line per group over years."""
    plt.figure(figsize=(12, 6))
    sns.lineplot(data=table, x='year', y='death_rate', hue=group, marker='o')
    plt.title(title, fontsize=14, fontweight='bold')
    plt.xlabel('Year')
    plt.ylabel('Deaths per 100,000')
    plt.legend(title=group.replace('_', ' ').title(), bbox_to_anchor=(1.02, 1), loc='upper left')
    plt.tight_layout()
    plt.savefig(path, dpi=dpi, bbox_inches='tight')
    plt.close()
    print(f"  Saved: {path}")


def plot_state_ranking(states: pd.DataFrame, year: int, assets_dir: Path, dpi: int = 300):
    """Horizontal bar chart of states by weighted rate."""
    ordered = states.sort_values('death_rate', ascending=True)
    fig, ax = plt.subplots(figsize=(10, max(6, len(ordered) * 0.22)))
    ax.barh(ordered['state'], ordered['death_rate'], color='#d6604d', edgecolor='black')
    ax.set_xlabel('Deaths per 100,000')
    ax.set_title(f'Drug Poisoning Death Rate by State, {year}', fontsize=13, fontweight='bold')
    ax.grid(axis='x', alpha=0.3)
    plt.tight_layout()
    path = assets_dir / f'state_ranking_{year}.png'
    plt.savefig(path, dpi=dpi, bbox_inches='tight')
    plt.close()
    print(f"  Saved: {path}")


def run_eda(config: Optional[PipelineConfig] = None):
    """
    Main execution function for EDA.

    Args:
        config: PipelineConfig instance. If None, loads from default.
    """
    if config is None:
        config = load_config()

    results_dir = config.get_results_subdir("eda_analysis")
    assets_dir = config.get_assets_subdir("eda_analysis")
    dpi = config.visualization.dpi

    log_file = results_dir / "eda_analysis.txt"

    with stage_log(log_file):
        print_section("EXPLORATORY DATA ANALYSIS")
        print(f"Execution Time: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")

        df = load_records(config)
        baseline, target = resolve_years(config, df)
        print(f"Records: {len(df):,}  Years: {baseline}–{target}")

        sns.set_style('whitegrid')

        print_section("1. NATIONAL TREND")
        national = national_by_year(df)
        print(national[['year', 'population', 'estimated_deaths', 'death_rate']].round(2).to_string(index=False))
        national.to_csv(results_dir / 'national_by_year.csv', index=False)
        try:
            plot_national_trend(national, assets_dir, dpi)
        except Exception as e:
            print(f"  ⚠ National trend plot failed: {e}")

        print_section("2. STATE AGGREGATES")
        states = state_by_year(df)
        states.to_csv(results_dir / 'state_by_year.csv', index=False)
        ranking = state_summary(df, target)
        print_subsection(f"Top states, {target}")
        print(ranking.head(10)[['rank', 'state', 'death_rate', 'estimated_deaths']].round(2).to_string(index=False))
        ranking.to_csv(results_dir / f'state_summary_{target}.csv', index=False)
        try:
            plot_state_ranking(ranking, target, assets_dir, dpi)
        except Exception as e:
            print(f"  ⚠ State ranking plot failed: {e}")

        print_section("3. URBANIZATION AND CENSUS DIVISION")
        urban = urbanization_by_year(df)
        urban.to_csv(results_dir / 'urbanization_by_year.csv', index=False)
        print(urban[urban['year'] == target][['urbanization', 'death_rate', 'counties']].round(2).to_string(index=False))
        divisions = division_by_year(df)
        divisions.to_csv(results_dir / 'division_by_year.csv', index=False)
        try:
            plot_group_trend(urban, 'urbanization', 'Death Rate by Urbanization Category',
                             assets_dir / 'urbanization_trend.png', dpi)
            plot_group_trend(divisions, 'census_division', 'Death Rate by Census Division',
                             assets_dir / 'division_trend.png', dpi)
        except Exception as e:
            print(f"  ⚠ Group trend plot failed: {e}")

        print_section("4. COUNTIES")
        top = top_counties(df, target, config.analysis.top_n)
        print_subsection(f"Top {config.analysis.top_n} counties, {target}")
        print(top[['county', 'state', 'population', 'death_rate']].round(2).to_string(index=False))
        top.to_csv(results_dir / f'top_counties_{target}.csv', index=False)

        if baseline != target:
            change = rate_change(df, baseline, target)
            print_subsection(f"Largest increases, {baseline} → {target}")
            print(change.head(config.analysis.top_n)[['county', 'state', 'absolute_change']].round(2).to_string(index=False))
            change.to_csv(results_dir / f'rate_change_{baseline}_{target}.csv', index=False)

        print_section("EDA COMPLETED")
        print(f"✓ Results saved to: {results_dir}")
        print(f"✓ Figures saved to: {assets_dir}")


if __name__ == "__main__":
    run_eda()
