import pandas as pd
import pytest

from odcounty.run_pipeline import STAGE_ORDER, main, run_pipeline


def test_list_stages(capsys):
    with pytest.raises(SystemExit) as excinfo:
        main(['--list-stages'])
    assert excinfo.value.code == 0
    out = capsys.readouterr().out
    for stage in STAGE_ORDER:
        assert stage in out


def test_show_config(config_file, capsys):
    with pytest.raises(SystemExit) as excinfo:
        main(['--config', str(config_file), '--show-config'])
    assert excinfo.value.code == 0
    assert 'Contiguity: queen' in capsys.readouterr().out


def test_unknown_stage_exits(config_file):
    with pytest.raises(SystemExit) as excinfo:
        run_pipeline(str(config_file), stages=['modeling'])
    assert excinfo.value.code == 1


def test_stage_failure_exits(config_file):
    # no source CSV staged
    with pytest.raises(SystemExit) as excinfo:
        run_pipeline(str(config_file), stages=['preprocessing'])
    assert excinfo.value.code == 1


def test_full_pipeline(staged_config, config_file):
    main(['--config', str(config_file)])

    results = staged_config.paths.results
    assert staged_config.get_records_path().exists()
    assert (results / 'eda_analysis' / 'national_by_year.csv').exists()
    assert (results / 'trend_analysis' / 'county_trends.csv').exists()

    hotspots = pd.read_csv(results / 'hotspot_analysis' / 'gi_star_2020.csv', dtype={'fips': str})
    assert hotspots.set_index('fips').loc['01001', 'gi_bin'] > 0
    assert (staged_config.get_assets_subdir('maps') / 'hotspot_explorer_2020.html').exists()


def test_stages_run_in_pipeline_order(prepared_config, config_file, capsys):
    run_pipeline(str(config_file), stages=['spatial', 'preprocessing'])
    out = capsys.readouterr().out
    assert out.index('STAGE 1: PREPROCESSING') < out.index('STAGE 3: HOT SPOT ANALYSIS')
