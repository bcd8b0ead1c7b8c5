#!/usr/bin/env python3
"""
Hot Spot Analysis Module
========================
Getis-Ord Gi* hot spot analysis of county death rates.

Analysis steps:
1. Join one year of records onto the county polygons
2. Build a contiguity (queen or rook) spatial weights matrix
3. Remove islands (counties without contiguous neighbors)
4. Calculate the local Gi* statistic (esda.G_Local with star=True)
5. Classify counties into hot/cold spot confidence bins
6. Calculate global Moran's I as a summary of overall clustering
"""

from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Tuple
import numpy as np
import pandas as pd
import geopandas as gpd
from scipy import stats

from libpysal.weights import Queen, Rook, W
from esda.getisord import G_Local
from esda.moran import Moran

from ..config import PipelineConfig, load_config
from ..console import print_header, stage_log
from ..preprocessing.data_preprocessing import load_records
from ..preprocessing.county_shapes import (
    join_records_to_shapes,
    resolve_map_year,
    shapes_for_config,
)


CONTIGUITY = {
    'queen': Queen,
    'rook': Rook,
}

HOTSPOT_COLUMNS = [
    'fips', 'state_fips', 'county', 'state', 'population', 'death_rate',
    'gi_z', 'p_norm', 'p_sim', 'gi_bin', 'gi_label',
]


def build_contiguity_weights(gdf: gpd.GeoDataFrame, method: str = 'queen',
                             transform: str = 'R') -> W:
    """
    Build contiguity weights from county polygons.

    The frame must be indexed by fips, so the weights ids are county FIPS codes
    in frame order.
    """
    try:
        builder = CONTIGUITY[method.lower()]
    except KeyError:
        raise ValueError(
            f"Unknown contiguity '{method}'. Must be one of: {sorted(CONTIGUITY)}"
        ) from None

    w = builder.from_dataframe(gdf, use_index=True, silence_warnings=True)
    w.transform = transform
    return w


def drop_islands(gdf: gpd.GeoDataFrame, w: W, method: str = 'queen',
                 transform: str = 'R') -> Tuple[gpd.GeoDataFrame, W, List[str]]:
    """Remove counties without neighbors and rebuild the weights."""
    islands = list(w.islands)
    if not islands:
        return gdf, w, []

    print(f"    ⚠ {len(islands)} counties have no contiguous neighbors and are excluded: "
          f"{', '.join(map(str, islands))}")
    kept = gdf.drop(index=islands)
    return kept, build_contiguity_weights(kept, method, transform), islands


def gi_star(gdf: gpd.GeoDataFrame, column: str, w: W, transform: str = 'R',
            permutations: int = 999, seed: Optional[int] = None) -> pd.DataFrame:
    """
    Local Getis-Ord Gi* of one column.

    Returns a frame indexed like ``gdf`` with the Gi* z-score and two-sided
    p-values: normal, and permutation (esda's folded p_sim doubled).

    ``w`` may carry any transform; G_Local gets binary weights and applies
    ``transform`` itself after adding the unit self-weight.
    """
    y = gdf[column].astype(float).values
    if np.isnan(y).any():
        raise ValueError(f"Column '{column}' contains missing values; drop them before Gi*")

    binary = W(w.neighbors, id_order=w.id_order, silence_warnings=True)
    g = G_Local(y, binary, transform=transform, permutations=permutations, star=True, seed=seed)

    z = np.asarray(g.Zs, dtype=float)
    result = pd.DataFrame({
        column: y,
        'gi': np.asarray(g.Gs, dtype=float),
        'gi_z': z,
        'p_norm': 2 * stats.norm.sf(np.abs(z)),
    }, index=gdf.index)
    if permutations:
        result['p_sim'] = np.minimum(1.0, 2 * np.asarray(g.p_sim, dtype=float))
    else:
        result['p_sim'] = np.nan
    return result


def hotspot_labels(levels: List[float]) -> Dict[int, str]:
    """Gi bin -> label, e.g. 3 -> 'Hot Spot - 99% Confidence'."""
    labels = {0: 'Not Significant'}
    for rank, level in zip((3, 2, 1), sorted(levels)):
        confidence = f"{round((1 - level) * 100, 1):g}% Confidence"
        labels[rank] = f"Hot Spot - {confidence}"
        labels[-rank] = f"Cold Spot - {confidence}"
    return labels


def classify_hotspots(z, p, levels: List[float] = (0.01, 0.05, 0.10)) -> pd.DataFrame:
    """
    Gi bins from z-scores and p-values.

    Bin magnitude is 3, 2 or 1 for the strictest to loosest significance
    level the p-value passes, 0 otherwise; the sign follows the z-score.
    """
    z = np.asarray(z, dtype=float)
    p = np.asarray(p, dtype=float)
    strict, mid, loose = sorted(levels)

    magnitude = np.select([p < strict, p < mid, p < loose], [3, 2, 1], default=0)
    bins = (np.sign(z) * magnitude).astype(int)

    labels = hotspot_labels(levels)
    return pd.DataFrame({
        'gi_bin': bins,
        'gi_label': [labels[b] for b in bins],
    })


def calculate_global_morans(gdf: gpd.GeoDataFrame, column: str, w: W,
                            permutations: int = 999, seed: Optional[int] = None) -> Dict:
    """Global Moran's I summary of one column."""
    if seed is not None:
        np.random.seed(seed)
    moran = Moran(gdf[column].astype(float).values, w, permutations=permutations)
    return {
        'variable': column,
        'morans_I': float(moran.I),
        'expected_I': float(moran.EI),
        'z_norm': float(moran.z_norm),
        'p_norm': float(moran.p_norm),
        'p_value': float(moran.p_sim) if permutations else float('nan'),
    }


def analyze_year(shapes: gpd.GeoDataFrame, records: pd.DataFrame, year: int,
                 config: PipelineConfig) -> Tuple[gpd.GeoDataFrame, Dict]:
    """Run the full Gi* workflow for one year."""
    spatial = config.spatial
    method = spatial.contiguity
    transform = spatial.weights_transform.upper()

    joined, report = join_records_to_shapes(shapes, records, year)
    report.print_summary()

    gdf = joined.dropna(subset=['death_rate']).set_index('fips', drop=False)
    gdf.index.name = None
    print(f"    Counties with a rate: {len(gdf):,}")

    w = build_contiguity_weights(gdf, method, transform)
    print(f"    ✓ {method.title()} contiguity weights for {w.n} counties")
    print(f"    ✓ Mean neighbors: {w.mean_neighbors:.2f}")

    islands = []
    if spatial.drop_islands:
        gdf, w, islands = drop_islands(gdf, w, method, transform)

    permutations = spatial.gi_permutations
    gi = gi_star(gdf, 'death_rate', w, transform=transform,
                 permutations=permutations, seed=spatial.random_state)

    p = gi['p_sim'] if spatial.gi_inference == 'sim' else gi['p_norm']
    bins = classify_hotspots(gi['gi_z'], p, spatial.significance_levels)
    bins.index = gi.index

    result = gdf.copy()
    for col in ['gi', 'gi_z', 'p_norm', 'p_sim']:
        result[col] = gi[col]
    result['gi_bin'] = bins['gi_bin']
    result['gi_label'] = bins['gi_label']
    result = result.reset_index(drop=True)

    moran = calculate_global_morans(gdf, 'death_rate', w, permutations, spatial.random_state)

    counts = result['gi_label'].value_counts()
    print("\n    Hot spot distribution:")
    for label in hotspot_labels(spatial.significance_levels).values():
        print(f"      {label:30s}: {int(counts.get(label, 0)):5d}")
    print(f"\n    Global Moran's I = {moran['morans_I']:.4f} (z={moran['z_norm']:.2f}, p={moran['p_norm']:.4f})")

    summary = {
        'year': year,
        'counties': len(result),
        'islands_dropped': len(islands),
        'unmatched_records': len(report.records_without_shape),
        'hot_spots': int((result['gi_bin'] > 0).sum()),
        'cold_spots': int((result['gi_bin'] < 0).sum()),
        **{k: v for k, v in moran.items() if k != 'variable'},
    }
    return result, summary


def hotspot_years(config: PipelineConfig, records: pd.DataFrame) -> List[int]:
    """Configured hot spot years, or the map year."""
    if config.spatial.hotspot_years:
        return [int(y) for y in config.spatial.hotspot_years]
    return [resolve_map_year(config, records)]


def hotspot_results_path(config: PipelineConfig, year: int) -> Path:
    return config.get_results_subdir("hotspot_analysis") / f"gi_star_{year}.gpkg"


def run_hotspot_analysis(config: Optional[PipelineConfig] = None) -> List[Path]:
    """
    Main execution function for hot spot analysis.

    Args:
        config: PipelineConfig instance. If None, loads from default.

    Returns:
        Paths to the per-year Gi* GeoPackages
    """
    if config is None:
        config = load_config()

    results_dir = config.get_results_subdir("hotspot_analysis")
    outputs = []

    with stage_log(results_dir / 'hotspot_analysis_results.txt'):
        print_header("GETIS-ORD GI* HOT SPOT ANALYSIS")
        print(f"Execution Time: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
        print(f"Contiguity: {config.spatial.contiguity}")
        print(f"Inference: {config.spatial.gi_inference}")

        print_header("1. Loading data", level=2)
        records = load_records(config)
        shapes = shapes_for_config(config)

        summaries = []
        for year in hotspot_years(config, records):
            print_header(f"2. Gi* for {year}", level=2)
            result, summary = analyze_year(shapes, records, year, config)
            summaries.append(summary)

            result[HOTSPOT_COLUMNS].to_csv(results_dir / f'gi_star_{year}.csv', index=False)
            gpkg_path = hotspot_results_path(config, year)
            result.to_file(gpkg_path, layer=f"gi_star_{year}", driver="GPKG")
            outputs.append(gpkg_path)
            print(f"\n    ✓ Saved: {gpkg_path}")

        summary_df = pd.DataFrame(summaries)
        summary_df.to_csv(results_dir / 'hotspot_summary.csv', index=False)

        print_header("HOT SPOT ANALYSIS COMPLETED")
        print(summary_df.round(4).to_string(index=False))
        print(f"✓ Results saved to: {results_dir}")

    return outputs


if __name__ == "__main__":
    run_hotspot_analysis()
