import geopandas as gpd
import pandas as pd
import pytest
from shapely.geometry import box

from odcounty.preprocessing import county_shapes
from odcounty.preprocessing.county_shapes import (
    derive_county_fips,
    download_county_shapes,
    join_records_to_shapes,
    load_county_shapes,
    prepare_county_shapes,
    resolve_map_year,
    run_shapes,
)


def test_derive_fips_from_state_and_county_codes():
    gdf = gpd.GeoDataFrame(
        {'STATEFP': ['1', '53'], 'COUNTYFP': ['1', '33']},
        geometry=[box(0, 0, 1, 1), box(1, 0, 2, 1)],
    )
    assert derive_county_fips(gdf).tolist() == ['01001', '53033']


def test_derive_fips_requires_identifier():
    gdf = gpd.GeoDataFrame({'name': ['x']}, geometry=[box(0, 0, 1, 1)])
    with pytest.raises(ValueError):
        derive_county_fips(gdf)


def test_prepare_excludes_non_contiguous_states(grid_shapes):
    alaska = gpd.GeoDataFrame(
        {'GEOID': ['02013'], 'NAME': ['Aleutians East']},
        geometry=[box(50, 50, 51, 51)], crs='EPSG:4326',
    )
    shapes = gpd.GeoDataFrame(
        pd.concat([grid_shapes, alaska], ignore_index=True), geometry='geometry', crs='EPSG:4326'
    )

    prepared = prepare_county_shapes(shapes, contiguous_only=True, excluded_state_fips=['02', '15'])
    assert '02013' not in set(prepared['fips'])
    assert len(prepared) == 25

    kept = prepare_county_shapes(shapes, contiguous_only=False, excluded_state_fips=['02'])
    assert len(kept) == 26


def test_prepare_reprojects(grid_shapes):
    prepared = prepare_county_shapes(grid_shapes, crs='EPSG:5070')
    assert prepared.crs.to_epsg() == 5070
    assert list(prepared.columns) == ['fips', 'state_fips', 'NAME', 'geometry']


def test_load_county_shapes_missing(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_county_shapes(tmp_path / 'counties.zip')


def test_load_county_shapes_from_geopackage(tmp_path, grid_shapes):
    path = tmp_path / 'counties.gpkg'
    grid_shapes.to_file(path, driver='GPKG')

    shapes = load_county_shapes(path)
    assert shapes['fips'].iloc[0] == '01001'
    assert shapes['state_fips'].nunique() == 2


def test_join_reports_unmatched_counties(grid_shapes, grid_records):
    shapes = prepare_county_shapes(grid_shapes)
    records = grid_records[grid_records['fips'] != '13025'].copy()
    extra = records[records['fips'] == '01001'].assign(fips='99999')
    records = pd.concat([records, extra], ignore_index=True)

    joined, report = join_records_to_shapes(shapes, records, 2018)

    assert len(joined) == 25
    assert report.matched == 24
    assert report.records_without_shape == ['99999']
    assert report.shapes_without_record == ['13025']
    assert pd.isna(joined.set_index("fips").loc["13025", "death_rate"])
    assert (joined['year'] == 2018).all()
    assert isinstance(joined, gpd.GeoDataFrame)


def test_join_unknown_year(grid_shapes, grid_records):
    with pytest.raises(ValueError):
        join_records_to_shapes(prepare_county_shapes(grid_shapes), grid_records, 1999)


def test_resolve_map_year(config, grid_records):
    assert resolve_map_year(config, grid_records) == 2020
    config.analysis.map_year = 2017
    assert resolve_map_year(config, grid_records) == 2017
    config.analysis.map_year = 2030
    with pytest.raises(ValueError):
        resolve_map_year(config, grid_records)


class _FakeResponse:
    def __init__(self, payload: bytes):
        self.payload = payload

    def raise_for_status(self):
        pass

    def iter_content(self, chunk_size=1):
        yield self.payload


def test_download_county_shapes(tmp_path, monkeypatch):
    calls = []

    def fake_get(url, stream, timeout):
        calls.append(url)
        return _FakeResponse(b'zipbytes')

    monkeypatch.setattr(county_shapes.requests, 'get', fake_get)
    destination = tmp_path / 'shapes' / 'counties.zip'

    assert download_county_shapes('https://example.test/c.zip', destination) == destination
    assert destination.read_bytes() == b'zipbytes'

    # cached
    download_county_shapes('https://example.test/c.zip', destination)
    assert calls == ['https://example.test/c.zip']


def test_run_shapes_writes_geopackage(prepared_config):
    output = run_shapes(prepared_config)

    assert output.exists()
    joined = gpd.read_file(output)
    assert len(joined) == 25
    unmatched = prepared_config.get_results_subdir('county_shapes') / 'unmatched_counties_2020.csv'
    assert unmatched.exists()