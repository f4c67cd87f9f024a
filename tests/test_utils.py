"""Tests for tmedfig.utils module."""

import os
import pickle

import pytest
import yaml

from tmedfig.errors import ConfigurationError, DataFormatError
from tmedfig.utils import (
    DEFAULT_CONFIG,
    _create_output_dirs,
    _load_config,
    checkpoint_stages,
    load_config,
    load_data,
    save_data,
)


class TestLoadConfig:
    def test_loads_valid_yaml(self, tmp_path):
        config = {'experiment': {'name': 'test'}, 'groups': {'EV': 3, 'WT': 3}}
        path = str(tmp_path / 'config.yaml')
        with open(path, 'w') as f:
            yaml.dump(config, f)

        result = _load_config(path)
        assert result['experiment']['name'] == 'test'
        assert result['groups']['EV'] == 3

    def test_missing_file_raises(self):
        with pytest.raises(FileNotFoundError):
            _load_config('/nonexistent/config.yaml')

    def test_user_values_override_defaults(self):
        config = load_config({'statistics': {'adj_p_threshold': 0.01}})

        assert config['statistics']['adj_p_threshold'] == 0.01
        assert config['statistics']['numerator'] == 'TMED7'
        assert config['normalization']['reference_columns'] == [5, 12]

    def test_groups_replaced_not_merged(self):
        config = load_config({
            'groups': {'A': 3, 'B': 3},
            'statistics': {'numerator': 'B', 'denominator': 'A'},
        })

        assert list(config['groups']) == ['A', 'B']

    def test_defaults_are_not_mutated(self):
        config = load_config({})
        config['annotation']['genes_of_interest'].append('XYZ')

        assert 'XYZ' not in DEFAULT_CONFIG['annotation']['genes_of_interest']
        assert 'XYZ' not in load_config({})['annotation']['genes_of_interest']

    def test_empty_yaml_gives_defaults(self, tmp_path):
        path = tmp_path / 'empty.yaml'
        path.write_text('')

        config = load_config(str(path))
        assert config['groups'] == DEFAULT_CONFIG['groups']


class TestValidateConfig:
    @pytest.mark.parametrize('override', [
        {'groups': {'EV': 4}},
        {'groups': {'EV': 4, 'TMED5': 0, 'TMED7': 4}},
        {'groups': {'EV': 4, 'TMED5': 2.5, 'TMED7': 4}},
        {'statistics': {'numerator': 'WT'}},
        {'statistics': {'numerator': 'TMED5', 'denominator': 'TMED5'}},
        {'statistics': {'adj_p_threshold': 0}},
        {'statistics': {'log2fc_threshold': -1}},
        {'normalization': {'reference_columns': [12, 5]}},
        {'normalization': {'reference_columns': [0, 4]}},
        {'normalization': {'reference_columns': [5]}},
        {'imputation': {'seed': 'abc'}},
    ])
    def test_inconsistent_config_raises(self, override):
        with pytest.raises(ConfigurationError):
            load_config(override)


class TestOutputDirs:
    def test_figures_qc_and_tables(self, tmp_path):
        dirs = _create_output_dirs(str(tmp_path / 'output'))

        assert sorted(dirs) == ['base', 'figures', 'qc', 'tables']
        assert dirs['qc'].startswith(dirs['figures'])
        assert all(os.path.isdir(p) for p in dirs.values())

    def test_rerun_keeps_existing_tables(self, tmp_path):
        dirs = _create_output_dirs(str(tmp_path / 'output'))
        kept = os.path.join(dirs['tables'], 'imputed_data.csv')
        open(kept, 'w').close()

        _create_output_dirs(str(tmp_path / 'output'))

        assert os.path.exists(kept)


class TestCheckpoints:
    def test_each_stage_writes_its_checkpoint(self, imputed_data):
        output_dir = imputed_data['config']['data_paths']['output_dir']
        for name in ('data_after_prep.pkl', 'data_after_norm.pkl', 'data_after_impute.pkl'):
            assert os.path.exists(os.path.join(output_dir, name))

    def test_stages_recorded(self, normed_data, imputed_data):
        assert checkpoint_stages(normed_data) == ['prep', 'norm']
        assert checkpoint_stages(imputed_data) == ['prep', 'norm', 'impute']

    def test_resume_from_checkpoint(self, imputed_data, capsys):
        output_dir = imputed_data['config']['data_paths']['output_dir']

        loaded = load_data(os.path.join(output_dir, 'data_after_impute.pkl'))

        assert loaded['group_cols'] == imputed_data['group_cols']
        assert loaded['imputation']['seed'] == 2025
        out = capsys.readouterr().out
        assert 'Stages done: prep, norm, impute' in out
        assert 'TMED5 (n=4)' in out

    def test_contrast_printed_after_stat(self, imputed_data, capsys):
        from tmedfig import stat_ip

        stat_ip(imputed_data)
        output_dir = imputed_data['config']['data_paths']['output_dir']
        capsys.readouterr()

        load_data(os.path.join(output_dir, 'data_after_stat.pkl'))

        assert 'Contrast: TMED7 - TMED5' in capsys.readouterr().out

    def test_default_checkpoint_name(self, prepped_data):
        path = save_data(prepped_data)
        assert os.path.basename(path) == 'data_checkpoint.pkl'

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_data(str(tmp_path / 'data_after_prep.pkl'))

    def test_foreign_pickle_rejected(self, tmp_path):
        path = tmp_path / 'other.pkl'
        with open(path, 'wb') as f:
            pickle.dump(['not', 'a', 'checkpoint'], f)

        with pytest.raises(DataFormatError):
            load_data(str(path))
