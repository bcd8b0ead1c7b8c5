#!/usr/bin/env python3
"""
County Shapes Module
====================
Downloads the Census cartographic-boundary county file and joins the
cleaned mortality records onto the county polygons.

This module:
1. Downloads the county boundary archive (cached in the data directory)
2. Loads the polygons, derives the 5-digit county FIPS and drops
   excluded states (Alaska, Hawaii, territories by default)
3. Reprojects to the configured equal-area CRS
4. Left-joins one year of records onto the shapes and reports unmatched counties
5. Saves the joined layer as a GeoPackage
"""

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple
import geopandas as gpd
import pandas as pd
import requests

from ..config import PipelineConfig, load_config
from ..console import print_section, print_subsection, stage_log
from .data_preprocessing import load_records


@dataclass
class JoinReport:
    """Counties that failed to match in a record/shape join."""
    year: int
    matched: int = 0
    records_without_shape: List[str] = field(default_factory=list)
    shapes_without_record: List[str] = field(default_factory=list)

    def print_summary(self):
        print(f"  [{self.year}] Matched counties: {self.matched:,}")
        print(f"  [{self.year}] Records without a shape: {len(self.records_without_shape)}")
        if self.records_without_shape:
            print(f"      {', '.join(self.records_without_shape[:20])}"
                  f"{' ...' if len(self.records_without_shape) > 20 else ''}")
        print(f"  [{self.year}] Shapes without a record: {len(self.shapes_without_record)}")
        if self.shapes_without_record:
            print(f"      {', '.join(self.shapes_without_record[:20])}"
                  f"{' ...' if len(self.shapes_without_record) > 20 else ''}")


def download_county_shapes(url: str, destination: Path, timeout: int = 60) -> Path:
    """
    Download the county boundary archive unless it is already cached.

    Args:
        url: Archive URL
        destination: Local file path for the archive
        timeout: Request timeout in seconds

    Returns:
        Path to the local archive
    """
    destination = Path(destination)
    if destination.exists():
        print(f"✓ County shapes already downloaded: {destination.name}")
        return destination

    destination.parent.mkdir(parents=True, exist_ok=True)
    print(f"Downloading county shapes from: {url}")

    response = requests.get(url, stream=True, timeout=timeout)
    response.raise_for_status()

    partial = destination.with_suffix(destination.suffix + ".part")
    with open(partial, 'wb') as f:
        for chunk in response.iter_content(chunk_size=1 << 16):
            if chunk:
                f.write(chunk)
    partial.replace(destination)

    print(f"✓ Saved: {destination} ({destination.stat().st_size / (1024**2):.1f} MB)")
    return destination


def derive_county_fips(gdf: gpd.GeoDataFrame) -> pd.Series:
    """Five-digit county FIPS from GEOID, or STATEFP + COUNTYFP."""
    if 'GEOID' in gdf.columns:
        return gdf['GEOID'].astype(str).str.zfill(5)
    if 'STATEFP' in gdf.columns and 'COUNTYFP' in gdf.columns:
        return gdf['STATEFP'].astype(str).str.zfill(2) + gdf['COUNTYFP'].astype(str).str.zfill(3)
    if 'fips' in gdf.columns:
        return gdf['fips'].astype(str).str.zfill(5)
    raise ValueError("County shapes need a GEOID, STATEFP/COUNTYFP or fips column")


def prepare_county_shapes(
    gdf: gpd.GeoDataFrame,
    contiguous_only: bool = True,
    excluded_state_fips: Optional[List[str]] = None,
    crs: Optional[str] = None,
) -> gpd.GeoDataFrame:
    """Add fips/state_fips, drop excluded states and reproject."""
    gdf = gdf.copy()
    gdf['fips'] = derive_county_fips(gdf)
    gdf['state_fips'] = gdf['fips'].str[:2]

    if contiguous_only and excluded_state_fips:
        before = len(gdf)
        gdf = gdf[~gdf['state_fips'].isin(excluded_state_fips)]
        print(f"  Excluded states {excluded_state_fips}: {before} → {len(gdf)} counties")

    if crs is not None:
        if gdf.crs is None:
            raise ValueError("County shapes have no CRS; cannot reproject")
        gdf = gdf.to_crs(crs)

    keep = ['fips', 'state_fips', 'geometry']
    if 'NAME' in gdf.columns:
        keep.insert(2, 'NAME')
    return gdf[keep].sort_values('fips').reset_index(drop=True)


def load_county_shapes(
    path: Path,
    contiguous_only: bool = True,
    excluded_state_fips: Optional[List[str]] = None,
    crs: Optional[str] = None,
) -> gpd.GeoDataFrame:
    """Read county polygons (shapefile, zip archive or GeoPackage)."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"County shapes not found: {path}")

    print(f"Reading county shapes: {path.name}")
    gdf = gpd.read_file(path)
    print(f"  Counties: {len(gdf):,}")
    print(f"  CRS: {gdf.crs}")

    return prepare_county_shapes(gdf, contiguous_only, excluded_state_fips, crs)


def join_records_to_shapes(
    shapes: gpd.GeoDataFrame,
    records: pd.DataFrame,
    year: int,
) -> Tuple[gpd.GeoDataFrame, JoinReport]:
    """
    Left-join one year of records onto county shapes by fips.

    Every shape is kept; counties without a record carry NaN values.
    """
    year_records = records[records['year'] == year]
    if year_records.empty:
        raise ValueError(f"No records for year {year}")

    # state_fips comes from the shapes
    year_records = year_records.drop(columns=['state_fips'], errors='ignore')

    shape_fips = set(shapes['fips'])
    record_fips = set(year_records['fips'])

    report = JoinReport(
        year=year,
        matched=len(shape_fips & record_fips),
        records_without_shape=sorted(record_fips - shape_fips),
        shapes_without_record=sorted(shape_fips - record_fips),
    )

    joined = shapes.merge(year_records, on='fips', how='left')
    joined['year'] = year
    return gpd.GeoDataFrame(joined, geometry='geometry', crs=shapes.crs), report


def shapes_for_config(config: PipelineConfig) -> gpd.GeoDataFrame:
    """Download (if allowed) and load county shapes as configured."""
    shapes_path = config.get_county_shapes_path()
    if not shapes_path.exists() and config.shapes.download:
        download_county_shapes(config.shapes.url, shapes_path, config.shapes.timeout)

    return load_county_shapes(
        shapes_path,
        contiguous_only=config.shapes.contiguous_only,
        excluded_state_fips=config.shapes.excluded_state_fips,
        crs=config.shapes.crs,
    )


def resolve_map_year(config: PipelineConfig, records: pd.DataFrame) -> int:
    """Configured map year, or the latest year in the records."""
    year = config.analysis.map_year
    if year is None:
        return int(records['year'].max())
    if year not in set(records['year']):
        raise ValueError(f"Configured map_year {year} is not in the data")
    return int(year)


def run_shapes(config: Optional[PipelineConfig] = None) -> Path:
    """
    Main execution function for shape loading and joining.

    Args:
        config: PipelineConfig instance. If None, loads from default.

    Returns:
        Path to the joined GeoPackage
    """
    if config is None:
        config = load_config()

    results_dir = config.get_results_subdir("county_shapes")
    log_file = results_dir / "county_shapes_join.txt"

    with stage_log(log_file):
        print_section("COUNTY SHAPES AND JOIN")
        print(f"Execution Time: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")

        print_subsection("Loading County Shapes")
        shapes = shapes_for_config(config)

        print_subsection("Joining Records")
        records = load_records(config)
        year = resolve_map_year(config, records)
        joined, report = join_records_to_shapes(shapes, records, year)
        report.print_summary()

        output_path = config.get_joined_gpkg_path(year)
        joined.to_file(output_path, layer=f"county_mortality_{year}", driver="GPKG")
        print(f"\n✓ Saved joined layer to: {output_path}")

        unmatched = pd.DataFrame({
            'fips': report.records_without_shape + report.shapes_without_record,
            'side': (['record'] * len(report.records_without_shape)
                     + ['shape'] * len(report.shapes_without_record)),
        })
        unmatched.to_csv(results_dir / f"unmatched_counties_{year}.csv", index=False)

    return output_path


if __name__ == "__main__":
    run_shapes()
