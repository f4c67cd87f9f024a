"""End-to-end tests for the volcano pipeline and the command line."""

import importlib
import os
import pkgutil

import pytest
import requests
import yaml
from typer.testing import CliRunner

import tmedfig
from tmedfig import pipeline, run_volcano_pipeline
from tmedfig import phylogeny
from tmedfig.cli import app

from conftest import make_config, make_intensity_frame

runner = CliRunner()


class TestRunVolcanoPipeline:
    def test_full_run(self, sample_config):
        config_path, tmp_path = sample_config

        data = run_volcano_pipeline(config_path)

        results = data['annotated']
        up = results[results['Protein'] == 'UPGENE'].iloc[0]
        down = results[results['Protein'] == 'DOWNGENE'].iloc[0]
        assert up['logFC'] == pytest.approx(2.0, abs=0.3)
        assert up['Significant'] == 'Upregulated in TMED7'
        assert down['Significant'] == 'Upregulated in TMED5'

        output = tmp_path / 'output'
        assert (output / 'tables' / 'imputed_data.csv').exists()
        assert (output / 'tables' / 'fold_change_data_TMED7_vs_TMED5.csv').exists()
        assert os.path.exists(data['figures']['density'])
        assert os.path.basename(data['figures']['volcano']) == 'volcano_plot_TMED7_vs_TMED5.png'

    def test_resume_skips_imputation(self, sample_config, monkeypatch):
        config_path, _ = sample_config
        first = run_volcano_pipeline(config_path)

        def no_impute(data, seed=None):
            raise AssertionError("impute_ip should not run when resuming")

        monkeypatch.setattr(pipeline, 'impute_ip', no_impute)
        second = run_volcano_pipeline(config_path, resume=True)

        assert second['imputation']['method'] == 'loaded'
        assert list(second['results']['Protein']) == list(first['results']['Protein'])
        assert second['results']['logFC'].values == pytest.approx(first['results']['logFC'].values)

    def test_resume_without_table_imputes(self, sample_config):
        config_path, _ = sample_config

        data = run_volcano_pipeline(config_path, resume=True)

        assert data['imputation']['method'] == 'randomforest'


class TestCli:
    def test_init_writes_template(self, tmp_path):
        target = tmp_path / 'config.yaml'

        result = runner.invoke(app, ['init', str(target)])

        assert result.exit_code == 0
        config = yaml.safe_load(target.read_text())
        assert config['statistics']['numerator'] == 'TMED7'
        assert config['groups'] == {'EV': 4, 'TMED5': 4, 'TMED7': 4}

    def test_volcano_bad_groups_exits(self, tmp_path):
        csv_path = tmp_path / 'coip.csv'
        make_intensity_frame().to_csv(csv_path, index=False)
        config = make_config(tmp_path, csv_path, groups={'EV': 4, 'TMED5': 4, 'TMED7': 5})
        config_path = tmp_path / 'config.yaml'
        config_path.write_text(yaml.safe_dump(config))

        result = runner.invoke(app, ['volcano', '--config', str(config_path)])

        assert result.exit_code == 1
        assert 'Error:' in result.output

    def test_tree_network_failure_exits(self, tmp_path, monkeypatch):
        def offline(url, timeout):
            raise requests.exceptions.ConnectionError('offline')

        monkeypatch.setattr(phylogeny.requests, 'get', offline)
        config_path = tmp_path / 'config.yaml'
        config_path.write_text(yaml.safe_dump({'data_paths': {'output_dir': str(tmp_path / 'out')}}))

        result = runner.invoke(app, ['tree', '--config', str(config_path)])

        assert result.exit_code == 1
        assert 'Error:' in result.output

    def test_help_lists_commands(self):
        result = runner.invoke(app, ['--help'])

        assert result.exit_code == 0
        for command in ('init', 'volcano', 'tree'):
            assert command in result.output


@pytest.mark.parametrize('module', [
    name for _, name, _ in pkgutil.iter_modules(tmedfig.__path__, 'tmedfig.')
])
def test_modules_documented(module):
    assert importlib.import_module(module).__doc__
