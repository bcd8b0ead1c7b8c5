#!/usr/bin/env python3
"""
Trend Analysis Module
=====================
Ordinary least-squares linear trends of death rates over years.

Trends are fitted with scipy.stats.linregress for:
1. The national population-weighted rate
2. Every state's population-weighted rate
3. Every county's modeled rate (counties with enough years only)
"""

from dataclasses import dataclass, asdict
from datetime import datetime
from pathlib import Path
from typing import Optional
import numpy as np
import pandas as pd
from scipy import stats
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt

from ..config import PipelineConfig, load_config
from ..console import print_header, stage_log
from ..preprocessing.data_preprocessing import load_records
from .exploratory_data_analysis import national_by_year, state_by_year


@dataclass
class TrendResult:
    """Linear fit of rate against year."""
    slope: float
    intercept: float
    r_squared: float
    p_value: float
    std_err: float
    n_years: int
    start_year: int
    end_year: int

    @property
    def significant(self) -> bool:
        return self.p_value < 0.05

    def predict(self, year) -> float:
        return self.intercept + self.slope * np.asarray(year)


def fit_trend(years, values) -> TrendResult:
    """
    Fit a linear trend of values on years.

    NaN values are dropped first. Raises ValueError when fewer than two
    distinct years remain.
    """
    x = np.asarray(years, dtype=float)
    y = np.asarray(values, dtype=float)
    keep = ~(np.isnan(x) | np.isnan(y))
    x, y = x[keep], y[keep]

    if len(np.unique(x)) < 2:
        raise ValueError("At least two distinct years are required to fit a trend")

    fit = stats.linregress(x, y)
    return TrendResult(
        slope=float(fit.slope),
        intercept=float(fit.intercept),
        r_squared=float(fit.rvalue ** 2),
        p_value=float(fit.pvalue),
        std_err=float(fit.stderr),
        n_years=int(len(x)),
        start_year=int(x.min()),
        end_year=int(x.max()),
    )


def _trend_table(frame: pd.DataFrame, keys: list, value: str, min_years: int) -> pd.DataFrame:
    rows = []
    for key, group in frame.groupby(keys):
        group = group.dropna(subset=[value])
        if group['year'].nunique() < min_years:
            continue
        result = fit_trend(group['year'], group[value])
        key = key if isinstance(key, tuple) else (key,)
        rows.append({**dict(zip(keys, key)), **asdict(result)})

    columns = keys + list(TrendResult.__dataclass_fields__)
    table = pd.DataFrame(rows, columns=columns)
    return table.sort_values('slope', ascending=False).reset_index(drop=True)


def national_trend(df: pd.DataFrame) -> TrendResult:
    """Trend of the national population-weighted rate."""
    national = national_by_year(df)
    return fit_trend(national['year'], national['death_rate'])


def state_trends(df: pd.DataFrame, min_years: int = 5) -> pd.DataFrame:
    """Trend of each state's population-weighted rate."""
    return _trend_table(state_by_year(df), ['state'], 'death_rate', min_years)


def county_trends(df: pd.DataFrame, min_years: int = 5) -> pd.DataFrame:
    """Trend of each county's modeled rate; counties with fewer years are skipped."""
    table = _trend_table(df, ['fips'], 'death_rate', min_years)
    names = df.drop_duplicates('fips').set_index('fips')[['county', 'state']]
    return table.join(names, on='fips')


def plot_national_fit(df: pd.DataFrame, trend: TrendResult, path: Path, dpi: int = 300):
    national = national_by_year(df)
    fig, ax = plt.subplots(figsize=(12, 6))
    ax.scatter(national['year'], national['death_rate'], color='#b2182b', zorder=3,
               label='Observed')
    ax.plot(national['year'], trend.predict(national['year']), color='black', linestyle='--',
            label=f'Trend: {trend.slope:+.2f}/yr (R²={trend.r_squared:.2f})')
    ax.set_xlabel('Year')
    ax.set_ylabel('Deaths per 100,000')
    ax.set_title('National Drug Poisoning Death Rate Trend', fontsize=14, fontweight='bold')
    ax.legend()
    ax.grid(True, linestyle='--', alpha=0.3)
    plt.tight_layout()
    plt.savefig(path, dpi=dpi, bbox_inches='tight')
    plt.close()
    print(f"    ✓ Saved: {path}")


def plot_state_slopes(states: pd.DataFrame, path: Path, dpi: int = 300):
    ordered = states.sort_values('slope', ascending=True)
    colors = ['#d7191c' if p < 0.05 else 'grey' for p in ordered['p_value']]
    fig, ax = plt.subplots(figsize=(10, max(6, len(ordered) * 0.22)))
    ax.barh(ordered['state'], ordered['slope'], color=colors, edgecolor='black')
    ax.axvline(x=0, color='black', linewidth=0.8)
    ax.set_xlabel('Change in deaths per 100,000 per year')
    ax.set_title('State Trends\n(Red = Significant p<0.05)', fontsize=13, fontweight='bold')
    ax.grid(axis='x', alpha=0.3)
    plt.tight_layout()
    plt.savefig(path, dpi=dpi, bbox_inches='tight')
    plt.close()
    print(f"    ✓ Saved: {path}")


def run_trends(config: Optional[PipelineConfig] = None):
    """
    Main execution function for trend analysis.

    Args:
        config: PipelineConfig instance. If None, loads from default.
    """
    if config is None:
        config = load_config()

    results_dir = config.get_results_subdir("trend_analysis")
    assets_dir = config.get_assets_subdir("trend_analysis")
    min_years = config.analysis.trend_min_years
    dpi = config.visualization.dpi

    with stage_log(results_dir / 'trend_analysis_results.txt'):
        print_header("TREND ANALYSIS")
        print(f"Execution Time: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
        print(f"Minimum years per trend: {min_years}")

        df = load_records(config)

        print_header("1. National trend", level=2)
        trend = national_trend(df)
        print(f"    Slope: {trend.slope:+.3f} deaths per 100,000 per year")
        print(f"    R²: {trend.r_squared:.3f}")
        print(f"    p-value: {trend.p_value:.6f}")
        if trend.significant:
            direction = "INCREASING" if trend.slope > 0 else "DECREASING"
            print(f"    ✓ SIGNIFICANT: national rate {direction} over time")
        pd.DataFrame([asdict(trend)]).to_csv(results_dir / 'national_trend.csv', index=False)

        print_header("2. State trends", level=2)
        states = state_trends(df, min_years)
        print(states.head(10)[['state', 'slope', 'r_squared', 'p_value']].round(4).to_string(index=False))
        states.to_csv(results_dir / 'state_trends.csv', index=False)

        print_header("3. County trends", level=2)
        counties = county_trends(df, min_years)
        n_sig = int((counties['p_value'] < 0.05).sum())
        print(f"    Counties fitted: {len(counties):,}")
        print(f"    Significant increases: {int(((counties['p_value'] < 0.05) & (counties['slope'] > 0)).sum()):,}")
        print(f"    Significant trends (any direction): {n_sig:,}")
        counties.to_csv(results_dir / 'county_trends.csv', index=False)

        print_header("4. Figures", level=2)
        try:
            plot_national_fit(df, trend, assets_dir / 'national_trend_fit.png', dpi)
        except Exception as e:
            print(f"    ⚠ National fit plot failed: {e}")
        try:
            if not states.empty:
                plot_state_slopes(states, assets_dir / 'state_trend_slopes.png', dpi)
        except Exception as e:
            print(f"    ⚠ State slope plot failed: {e}")

        print_header("TREND ANALYSIS COMPLETED")
        print(f"✓ Results saved to: {results_dir}")


if __name__ == "__main__":
    run_trends()
