"""Tests for tmedfig.prep module."""

import os

import numpy as np
import pandas as pd
import pytest

from tmedfig import prep_ip
from tmedfig.errors import ConfigurationError, DataFormatError
from tmedfig.prep import assign_groups, group_labels, load_intensity_table

from conftest import EV_ZERO_ROW, GROUPS, N_GENES, NAN_ROW, make_config


class TestLoadIntensityTable:
    def test_deduplicates_keeping_first(self, sample_config):
        _, tmp_path = sample_config
        df = load_intensity_table(str(tmp_path / 'coip.csv'))

        assert len(df) == N_GENES
        assert df.index.is_unique
        # The appended duplicate was all 1.0
        assert not (df.loc['GENE10'] == 1.0).all()

    def test_uppercases_gene_names(self, sample_config):
        _, tmp_path = sample_config
        df = load_intensity_table(str(tmp_path / 'coip.csv'))

        assert 'TMEM41B' in df.index
        assert 'tmem41b' not in df.index

    def test_drops_metadata_columns(self, sample_config):
        _, tmp_path = sample_config
        df = load_intensity_table(str(tmp_path / 'coip.csv'))

        assert not any('Protein' in c for c in df.columns)
        assert df.shape[1] == sum(GROUPS.values())

    def test_zeros_and_empty_cells_become_missing(self, sample_config):
        _, tmp_path = sample_config
        df = load_intensity_table(str(tmp_path / 'coip.csv'))

        assert (df.fillna(-1) != 0).all().all()
        assert df[['EV_1', 'EV_2', 'EV_3', 'EV_4']].iloc[EV_ZERO_ROW].isna().all()
        assert np.isnan(df.iloc[NAN_ROW]['TMED5_2'])

    def test_missing_identifier_column_raises(self, tmp_path):
        path = tmp_path / 'bad.csv'
        pd.DataFrame({'Gene': ['A'], 'S1': [1.0]}).to_csv(path, index=False)

        with pytest.raises(DataFormatError, match='Genes'):
            load_intensity_table(str(path))

    def test_non_numeric_sample_raises(self, tmp_path):
        path = tmp_path / 'bad.csv'
        pd.DataFrame({'Genes': ['A', 'B'], 'S1': [1.0, 'high']}).to_csv(path, index=False)

        with pytest.raises(DataFormatError, match='S1'):
            load_intensity_table(str(path))

    def test_reads_tab_separated(self, tmp_path):
        path = tmp_path / 'data.tsv'
        pd.DataFrame({'Genes': ['a', 'b'], 'S1': [1.0, 0.0], 'S2': [2.0, 3.0]}).to_csv(
            path, sep='\t', index=False)

        df = load_intensity_table(str(path))
        assert list(df.index) == ['A', 'B']
        assert np.isnan(df.loc['B', 'S1'])

    def test_missing_file_raises(self):
        with pytest.raises(FileNotFoundError):
            load_intensity_table('/nonexistent/data.csv')


class TestAssignGroups:
    def test_positional_blocks(self):
        cols = [f'S{i}' for i in range(1, 7)]
        groups = assign_groups(cols, {'A': 2, 'B': 3, 'C': 1})

        assert groups == {'A': ['S1', 'S2'], 'B': ['S3', 'S4', 'S5'], 'C': ['S6']}
        assert group_labels(groups) == ['A', 'A', 'B', 'B', 'B', 'C']

    def test_size_mismatch_raises(self):
        with pytest.raises(ConfigurationError):
            assign_groups(['S1', 'S2', 'S3'], {'A': 2, 'B': 2})


class TestPrepIp:
    def test_returns_required_keys(self, prepped_data):
        assert 'df' in prepped_data
        assert 'config' in prepped_data
        assert 'group_cols' in prepped_data
        assert 'metadata' in prepped_data
        assert 'output_dirs' in prepped_data

    def test_group_cols_match_config(self, prepped_data):
        group_cols = prepped_data['group_cols']

        assert list(group_cols) == list(GROUPS)
        for name, size in GROUPS.items():
            assert len(group_cols[name]) == size
            assert all(c.startswith(name + '_') for c in group_cols[name])

    def test_metadata_counts_are_consistent(self, prepped_data):
        metadata = prepped_data['metadata']

        assert metadata['n_proteins'] == len(prepped_data['df'])
        assert metadata['n_samples'] == sum(GROUPS.values())
        assert metadata['groups'] == list(GROUPS)

    def test_group_size_mismatch_raises(self, sample_config):
        _, tmp_path = sample_config
        config = make_config(tmp_path, tmp_path / 'coip.csv',
                             groups={'EV': 4, 'TMED5': 4, 'TMED7': 3})

        with pytest.raises(ConfigurationError):
            prep_ip(config)

    def test_checkpoint_written(self, prepped_data):
        out = prepped_data['config']['data_paths']['output_dir']
        assert os.path.exists(os.path.join(out, 'data_after_prep.pkl'))
