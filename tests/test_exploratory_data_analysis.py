import math

import pandas as pd
import pytest

from odcounty.analysis.exploratory_data_analysis import (
    division_by_year,
    national_by_year,
    rate_change,
    resolve_years,
    run_eda,
    state_by_year,
    state_summary,
    top_counties,
    urbanization_by_year,
    weighted_rate,
)


def _frame(rows):
    df = pd.DataFrame(rows, columns=['fips', 'year', 'state', 'county', 'population',
                                     'death_rate', 'urbanization'])
    df['estimated_deaths'] = df['death_rate'] * df['population'] / 100000
    df['rate_lower'] = df['death_rate'] - 1
    df['rate_upper'] = df['death_rate'] + 1
    df['census_division'] = 6
    return df


@pytest.fixture
def small_records():
    return _frame([
        ('01001', 2015, 'Alabama', 'A', 100000, 10.0, 'Noncore'),
        ('01003', 2015, 'Alabama', 'B', 300000, 20.0, 'Small Metro'),
        ('04013', 2015, 'Arizona', 'C', 100000, 40.0, 'Large Central Metro'),
        ('01001', 2016, 'Alabama', 'A', 100000, 12.0, 'Noncore'),
        ('01003', 2016, 'Alabama', 'B', 300000, 22.0, 'Small Metro'),
    ])


def test_weighted_rate_uses_population_weights(small_records):
    alabama_2015 = small_records[(small_records['state'] == 'Alabama') & (small_records['year'] == 2015)]
    # (10 * 1 + 20 * 3) / 4
    assert weighted_rate(alabama_2015) == pytest.approx(17.5)


def test_weighted_rate_zero_population_is_nan():
    frame = _frame([('01001', 2015, 'Alabama', 'A', 0, 10.0, 'Noncore')])
    assert math.isnan(weighted_rate(frame))


def test_national_by_year(small_records):
    national = national_by_year(small_records).set_index('year')

    assert national.loc[2015, 'population'] == 500000
    assert national.loc[2015, 'counties'] == 3
    assert national.loc[2015, 'estimated_deaths'] == pytest.approx(10 + 60 + 40)
    assert national.loc[2015, 'death_rate'] == pytest.approx(110 / 500000 * 100000)
    assert national.loc[2015, 'median_county_rate'] == pytest.approx(20.0)
    assert national.loc[2016, 'counties'] == 2


def test_state_by_year_has_one_row_per_state_year(small_records):
    states = state_by_year(small_records)
    assert len(states) == 3
    assert set(states.columns) >= {'state', 'year', 'death_rate', 'population'}


def test_state_summary_ranks_states(small_records):
    summary = state_summary(small_records, 2015)
    assert summary['state'].tolist() == ['Arizona', 'Alabama']
    assert summary['rank'].tolist() == [1, 2]


def test_state_summary_unknown_year(small_records):
    with pytest.raises(ValueError):
        state_summary(small_records, 1999)


def test_group_aggregates(small_records):
    urban = urbanization_by_year(small_records)
    assert set(urban['urbanization']) == {'Noncore', 'Small Metro', 'Large Central Metro'}
    divisions = division_by_year(small_records)
    assert divisions['census_division'].unique().tolist() == [6]


def test_top_counties_orders_by_rate(small_records):
    top = top_counties(small_records, 2015, n=2)
    assert top['fips'].tolist() == ['04013', '01003']


def test_rate_change_drops_counties_missing_a_year(small_records):
    change = rate_change(small_records, 2015, 2016)

    assert set(change['fips']) == {'01001', '01003'}
    row = change.set_index('fips').loc['01001']
    assert row['absolute_change'] == pytest.approx(2.0)
    assert row['percent_change'] == pytest.approx(20.0)


def test_resolve_years_defaults_to_data_range(config, grid_records):
    assert resolve_years(config, grid_records) == (2015, 2020)

    config.analysis.map_year = 1990
    with pytest.raises(ValueError):
        resolve_years(config, grid_records)


def test_run_eda_writes_tables_and_figures(prepared_config):
    run_eda(prepared_config)

    results = prepared_config.get_results_subdir('eda_analysis')
    assets = prepared_config.get_assets_subdir('eda_analysis')
    for name in ['national_by_year.csv', 'state_by_year.csv', 'state_summary_2020.csv',
                 'top_counties_2020.csv', 'rate_change_2015_2020.csv', 'eda_analysis.txt']:
        assert (results / name).exists(), name
    assert (assets / 'national_trend.png').exists()

    top = pd.read_csv(results / 'top_counties_2020.csv', dtype={'fips': str})
    assert len(top) == 3
    assert top['death_rate'].iloc[0] == pytest.approx(40.0 + 1.5 * 5)
