import matplotlib
matplotlib.use('Agg')

import pandas as pd
import geopandas as gpd
import pytest
import yaml
from shapely.geometry import box

from odcounty.config import PipelineConfig
from odcounty.preprocessing.data_preprocessing import clean_records


GRID_SIZE = 5
YEARS = list(range(2015, 2021))
URBANIZATION = ['Large Central Metro', 'Small Metro', 'Noncore']


def grid_fips(row: int, col: int) -> str:
    """Rows 0-2 are state 01, rows 3-4 are state 13."""
    state = '01' if row < 3 else '13'
    return f"{state}{row * GRID_SIZE + col + 1:03d}"


def grid_rate(row: int, col: int, year: int) -> float:
    """High block in the top-left 2x2 corner, rates rising every year."""
    base = 40.0 if (row < 2 and col < 2) else 10.0 + 0.1 * col
    return base + 1.5 * (year - YEARS[0])


@pytest.fixture
def raw_frame():
    """Raw NCHS-style records, population with thousands separators."""
    rows = []
    for fips, state, county, pops in [
        (1001, 'Alabama', 'Autauga County', ['55,221', '55,327']),
        (1003, 'Alabama', 'Baldwin County', ['203,709', '208,107']),
        (4013, 'Arizona', 'Maricopa County', ['4,155,501', '4,242,997']),
    ]:
        for year, pop in zip([2015, 2016], pops):
            rows.append({
                'FIPS': str(fips),
                'Year': year,
                'State': state,
                'FIPS State': str(fips // 1000),
                'County': county,
                'Population': pop,
                'Model-based Death Rate': 10.0 + (year - 2015) * 2 + fips % 7,
                'Standard Deviation': 1.2,
                'Lower Confidence Limit': 8.0,
                'Upper Confidence Limit': 14.0,
                'Urban/Rural Category': 'Medium/Small Metro',
                'Census Division': 6 if fips < 4000 else 8,
            })
    return pd.DataFrame(rows)


@pytest.fixture
def grid_shapes():
    """5x5 grid of unit squares with Census-style attributes."""
    records = []
    for row in range(GRID_SIZE):
        for col in range(GRID_SIZE):
            fips = grid_fips(row, col)
            records.append({
                'GEOID': fips,
                'STATEFP': fips[:2],
                'COUNTYFP': fips[2:],
                'NAME': f"County {fips}",
                'geometry': box(col, GRID_SIZE - row - 1, col + 1, GRID_SIZE - row),
            })
    return gpd.GeoDataFrame(records, geometry='geometry', crs='EPSG:4326')


@pytest.fixture
def grid_raw_frame():
    rows = []
    for row in range(GRID_SIZE):
        for col in range(GRID_SIZE):
            fips = grid_fips(row, col)
            for year in YEARS:
                rows.append({
                    'FIPS': str(int(fips)),
                    'Year': year,
                    'State': 'Alabama' if fips.startswith('01') else 'Georgia',
                    'FIPS State': str(int(fips[:2])),
                    'County': f"County {fips}",
                    'Population': f"{10000 * (col + 1):,}",
                    'Model-based Death Rate': grid_rate(row, col, year),
                    'Standard Deviation': 1.0,
                    'Lower Confidence Limit': grid_rate(row, col, year) - 2,
                    'Upper Confidence Limit': grid_rate(row, col, year) + 2,
                    'Urban/Rural Category': URBANIZATION[(row + col) % 3],
                    'Census Division': 6 if fips.startswith('01') else 5,
                })
    return pd.DataFrame(rows)


@pytest.fixture
def grid_records(grid_raw_frame):
    return clean_records(grid_raw_frame)


@pytest.fixture
def config_dict():
    return {
        'paths': {
            'data_dir': 'data',
            'results_dir': 'results',
            'assets_dir': 'assets',
            'source': {
                'mortality_csv': 'mortality.csv',
                'county_shapes': 'counties.gpkg',
            },
        },
        'shapes': {
            'download': False,
            'contiguous_only': True,
            'crs': None,
        },
        'analysis': {
            'top_n': 3,
            'trend_min_years': 3,
        },
        'spatial': {
            'contiguity': 'queen',
            'weights_transform': 'R',
            'gi_star': {
                'permutations': 99,
                'inference': 'norm',
                'random_state': 7,
            },
        },
        'visualization': {
            'dpi': 40,
            'figsize': [6, 4],
            'interactive': True,
        },
    }


@pytest.fixture
def config_file(tmp_path, config_dict):
    config_dir = tmp_path / 'config'
    config_dir.mkdir()
    path = config_dir / 'pipeline.yaml'
    with open(path, 'w') as f:
        yaml.safe_dump(config_dict, f)
    return path


@pytest.fixture
def config(config_file):
    cfg = PipelineConfig.load(str(config_file))
    cfg.paths.ensure_dirs()
    return cfg


@pytest.fixture
def staged_config(config, grid_raw_frame, grid_shapes):
    """Config whose data directory holds the raw CSV and the county shapes."""
    grid_raw_frame.to_csv(config.get_source_csv_path(), index=False)
    grid_shapes.to_file(config.get_county_shapes_path(), driver='GPKG')
    return config


@pytest.fixture
def prepared_config(staged_config):
    """Staged config with the cleaned Parquet already built."""
    from odcounty.preprocessing.data_preprocessing import convert_dataset_to_parquet
    convert_dataset_to_parquet(staged_config)
    return staged_config
