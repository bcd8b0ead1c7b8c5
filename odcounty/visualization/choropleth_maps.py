#!/usr/bin/env python3
"""
Visualization Module - Choropleth Maps
======================================
Static county and state choropleths of drug poisoning death rates,
plus the Gi* hot spot map.
"""

from pathlib import Path
from typing import List, Optional
import geopandas as gpd
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
from matplotlib.patches import Patch

from ..config import PipelineConfig, load_config
from ..preprocessing.data_preprocessing import RATE_BASE, load_records
from ..preprocessing.county_shapes import join_records_to_shapes, resolve_map_year, shapes_for_config
from ..analysis.exploratory_data_analysis import resolve_years


# ArcGIS hot spot palette, keyed by Gi bin
HOTSPOT_COLORS = {
    3: '#d62f27',   # Hot spot 99%
    2: '#ed7551',   # Hot spot 95%
    1: '#fab984',   # Hot spot 90%
    0: '#f7f7f2',   # Not significant
    -1: '#c0ccbe',  # Cold spot 90%
    -2: '#849eba',  # Cold spot 95%
    -3: '#4575b5',  # Cold spot 99%
}

MISSING_KWDS = {
    'color': 'lightgrey',
    'edgecolor': 'white',
    'hatch': '///',
    'label': 'No data',
}


def _finish_map(fig, ax, title: str, output_path: Path, dpi: int):
    ax.set_title(title, fontsize=14, fontweight='bold')
    ax.set_axis_off()
    plt.tight_layout()
    output_path.parent.mkdir(parents=True, exist_ok=True)
    plt.savefig(output_path, dpi=dpi, bbox_inches='tight')
    plt.close(fig)
    print(f"    ✓ Saved: {output_path}")


def plot_county_choropleth(
    gdf: gpd.GeoDataFrame,
    column: str,
    output_path: Path,
    title: str,
    cmap: str = 'OrRd',
    legend_label: str = 'Deaths per 100,000',
    vmin: Optional[float] = None,
    vmax: Optional[float] = None,
    figsize: tuple = (14, 8),
    dpi: int = 300,
) -> Path:
    """
    Continuous county choropleth of one column.

    Counties with no value are drawn hatched grey.
    """
    if column not in gdf.columns:
        raise ValueError(f"Column '{column}' not in map data")

    output_path = Path(output_path)
    fig, ax = plt.subplots(figsize=tuple(figsize))
    gdf.plot(
        column=column,
        cmap=cmap,
        linewidth=0.1,
        edgecolor='grey',
        vmin=vmin,
        vmax=vmax,
        legend=True,
        legend_kwds={'label': legend_label, 'shrink': 0.6},
        missing_kwds=MISSING_KWDS,
        ax=ax,
    )
    _finish_map(fig, ax, title, output_path, dpi)
    return output_path


def dissolve_states(gdf: gpd.GeoDataFrame) -> gpd.GeoDataFrame:
    """Merge county polygons to states with a population-weighted rate."""
    counties = gdf.copy()
    counties['estimated_deaths'] = counties['estimated_deaths'].fillna(0)
    counties['population'] = counties['population'].fillna(0)

    states = counties.dissolve(
        by='state_fips',
        aggfunc={'population': 'sum', 'estimated_deaths': 'sum'},
    )
    states['death_rate'] = (
        states['estimated_deaths'] / states['population'].where(states['population'] > 0) * RATE_BASE
    )
    return states.reset_index()


def plot_state_choropleth(
    gdf: gpd.GeoDataFrame,
    output_path: Path,
    title: str,
    cmap: str = 'OrRd',
    figsize: tuple = (14, 8),
    dpi: int = 300,
) -> Path:
    """State choropleth from a county-level joined frame."""
    states = dissolve_states(gdf)
    return plot_county_choropleth(states, 'death_rate', output_path, title,
                                  cmap=cmap, figsize=figsize, dpi=dpi)


def plot_hotspot_map(
    gdf: gpd.GeoDataFrame,
    output_path: Path,
    title: str,
    labels: Optional[dict] = None,
    figsize: tuple = (14, 8),
    dpi: int = 300,
) -> Path:
    """Categorical Gi* bin map with the ArcGIS hot spot palette."""
    if 'gi_bin' not in gdf.columns:
        raise ValueError("Hot spot map needs a 'gi_bin' column")

    output_path = Path(output_path)
    colors = gdf['gi_bin'].map(HOTSPOT_COLORS).fillna(MISSING_KWDS['color'])

    fig, ax = plt.subplots(figsize=tuple(figsize))
    gdf.plot(color=colors.tolist(), linewidth=0.1, edgecolor='grey', ax=ax)

    if labels is None:
        labels = gdf.drop_duplicates('gi_bin').set_index('gi_bin')['gi_label'].to_dict()
    handles = [
        Patch(facecolor=HOTSPOT_COLORS[b], edgecolor='grey', label=labels[b])
        for b in sorted(HOTSPOT_COLORS, reverse=True) if b in labels
    ]
    ax.legend(handles=handles, loc='lower left', fontsize=9, title='Gi* bin')
    _finish_map(fig, ax, title, output_path, dpi)
    return output_path


def generate_choropleths(config: Optional[PipelineConfig] = None) -> List[str]:
    """
    Generate county, state and rate-change choropleths for the map year.

    Returns:
        List of paths to saved PNG files
    """
    if config is None:
        config = load_config()

    print("Generating choropleth maps...")
    viz = config.visualization
    assets_dir = config.get_assets_subdir("maps")

    records = load_records(config)
    shapes = shapes_for_config(config)
    year = resolve_map_year(config, records)
    joined, report = join_records_to_shapes(shapes, records, year)
    report.print_summary()

    generated = []
    rate_cap = joined['death_rate'].quantile(0.98)
    path = plot_county_choropleth(
        joined, 'death_rate', assets_dir / f'county_death_rate_{year}.png',
        f'Modeled Drug Poisoning Death Rate by County, {year}',
        cmap=viz.cmap, vmax=rate_cap, figsize=viz.figsize, dpi=viz.dpi,
    )
    generated.append(str(path))

    path = plot_state_choropleth(
        joined, assets_dir / f'state_death_rate_{year}.png',
        f'Drug Poisoning Death Rate by State, {year}',
        cmap=viz.cmap, figsize=viz.figsize, dpi=viz.dpi,
    )
    generated.append(str(path))

    baseline, target = resolve_years(config, records)
    if baseline != target:
        base = records[records['year'] == baseline][['fips', 'death_rate']]
        change = joined.merge(base.rename(columns={'death_rate': 'baseline_rate'}), on='fips', how='left')
        change['rate_change'] = change['death_rate'] - change['baseline_rate']
        limit = change['rate_change'].abs().quantile(0.98)
        path = plot_county_choropleth(
            change, 'rate_change', assets_dir / f'county_rate_change_{baseline}_{target}.png',
            f'Change in Death Rate by County, {baseline}-{target}',
            cmap='RdBu_r', legend_label='Change in deaths per 100,000',
            vmin=-limit, vmax=limit, figsize=viz.figsize, dpi=viz.dpi,
        )
        generated.append(str(path))

    return generated


def generate_hotspot_maps(config: Optional[PipelineConfig] = None) -> List[str]:
    """
    Static Gi* maps for every year with hot spot results.

    Returns:
        List of paths to saved PNG files
    """
    if config is None:
        config = load_config()

    results_dir = config.get_results_subdir("hotspot_analysis")
    assets_dir = config.get_assets_subdir("maps")
    viz = config.visualization

    gpkg_files = sorted(results_dir.glob('gi_star_*.gpkg'))
    if not gpkg_files:
        raise FileNotFoundError(f"No Gi* results in {results_dir} (run the spatial stage first)")

    generated = []
    for gpkg in gpkg_files:
        year = gpkg.stem.rsplit('_', 1)[-1]
        gdf = gpd.read_file(gpkg)
        path = plot_hotspot_map(
            gdf, assets_dir / f'gi_star_hotspots_{year}.png',
            f'Getis-Ord Gi* Hot Spots of Drug Poisoning Death Rate, {year}',
            figsize=viz.figsize, dpi=viz.dpi,
        )
        generated.append(str(path))
    return generated


if __name__ == "__main__":
    generate_choropleths()
