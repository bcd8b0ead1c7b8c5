import pandas as pd
import pytest

from odcounty.preprocessing.data_preprocessing import (
    clean_fips,
    clean_population,
    clean_records,
    convert_dataset_to_parquet,
    load_raw_records,
    load_records,
    run_preprocessing,
    validate_columns,
)


def test_clean_population_strips_thousands_separators():
    cleaned = clean_population(pd.Series(['55,221', ' 4,155,501 ', '900']))
    assert cleaned.tolist() == [55221, 4155501, 900]
    assert cleaned.dtype == 'int64'


def test_clean_fips_pads_mixed_inputs():
    cleaned = clean_fips(pd.Series([1001, '1001', 1001.0, ' 01001 ', '53033']), width=5)
    assert cleaned.tolist() == ['01001', '01001', '01001', '01001', '53033']


def test_clean_state_fips_width_two():
    assert clean_fips(pd.Series(['1', '53']), width=2).tolist() == ['01', '53']


@pytest.mark.parametrize('codes', [['1001', None], [1001.0, float('nan')], ['1001', '  ']])
def test_clean_fips_rejects_missing_codes(codes):
    with pytest.raises(ValueError):
        clean_fips(pd.Series(codes), width=5)


def test_clean_records_renames_and_derives_deaths(raw_frame):
    records = clean_records(raw_frame)

    assert {'fips', 'year', 'state_fips', 'population', 'death_rate',
            'urbanization', 'census_division', 'estimated_deaths'} <= set(records.columns)
    assert records['fips'].str.len().eq(5).all()
    assert records['state_fips'].tolist()[:2] == ['01', '01']

    row = records[(records['fips'] == '01001') & (records['year'] == 2015)].iloc[0]
    assert row['population'] == 55221
    assert row['estimated_deaths'] == pytest.approx(row['death_rate'] * 55221 / 100000)


def test_clean_records_sorted_by_county_then_year(raw_frame):
    shuffled = raw_frame.sample(frac=1, random_state=3)
    records = clean_records(shuffled)
    assert list(zip(records['fips'], records['year'])) == sorted(zip(records['fips'], records['year']))


def test_validate_columns_lists_every_missing_column(raw_frame):
    broken = raw_frame.drop(columns=['Population', 'Census Division'])
    with pytest.raises(ValueError) as excinfo:
        validate_columns(broken)
    assert 'Population' in str(excinfo.value)
    assert 'Census Division' in str(excinfo.value)


def test_load_raw_records_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_raw_records(tmp_path / 'missing.csv')


def test_load_raw_records_keeps_identifiers_as_text(tmp_path, raw_frame):
    path = tmp_path / 'mortality.csv'
    raw_frame.assign(FIPS=raw_frame['FIPS'].str.zfill(5)).to_csv(path, index=False)

    loaded = load_raw_records(path)
    assert loaded['FIPS'].iloc[0] == '01001'
    assert loaded['Population'].iloc[0] == '55,221'


def test_convert_dataset_to_parquet_skips_existing(staged_config):
    assert convert_dataset_to_parquet(staged_config) is True
    assert staged_config.get_records_path().exists()
    assert convert_dataset_to_parquet(staged_config) is False
    assert convert_dataset_to_parquet(staged_config, force=True) is True


def test_load_records_filters_configured_years(prepared_config):
    prepared_config.analysis.years = [2016, 2017]
    records = load_records(prepared_config)
    assert sorted(records['year'].unique()) == [2016, 2017]


def test_load_records_without_parquet(config):
    with pytest.raises(FileNotFoundError):
        load_records(config)


def test_run_preprocessing_writes_log(staged_config, capsys):
    run_preprocessing(staged_config)

    logs = list(staged_config.get_results_subdir('dataset_documentation').glob('dataset_info_*.txt'))
    assert len(logs) == 1
    text = logs[0].read_text(encoding='utf-8')
    assert 'COMPREHENSIVE DATASET ANALYSIS' in text
    assert 'Counties: 25' in text
