"""Shared test fixtures for the TMED figure pipeline tests."""

import matplotlib

matplotlib.use('Agg')

import numpy as np
import pandas as pd
import pytest
import yaml


GROUPS = {'EV': 4, 'TMED5': 4, 'TMED7': 4}
N_GENES = 120

# Row positions with a known story
UP_ROW = 4        # 4x higher in TMED7 than TMED5
DOWN_ROW = 5      # 4x lower in TMED7 than TMED5
EV_ZERO_ROW = 6   # never detected in EV
LOWER_ROW = 7     # lowercase gene name in the input
NAN_ROW = 8       # one empty cell


def make_intensity_frame(seed=42):
    """Raw intensity table shaped like the Co-IP export."""
    rng = np.random.default_rng(seed)

    genes = [f'GENE{i}' for i in range(N_GENES)]
    genes[:4] = ['TMED5', 'TMED7', 'GORASP2', 'BLZF1']
    genes[UP_ROW] = 'UPGENE'
    genes[DOWN_ROW] = 'DOWNGENE'
    genes[EV_ZERO_ROW] = 'EVZERO'
    genes[LOWER_ROW] = 'tmem41b'

    data = {
        'Genes': genes,
        'Protein.Ids': [f'P{i:05d}' for i in range(N_GENES)],
        'Protein.Names': [f'{g}_HUMAN' for g in genes],
    }

    base = rng.normal(10, 1, N_GENES)
    for group, n in GROUPS.items():
        for rep in range(1, n + 1):
            log_vals = base + rng.normal(0, 0.1, N_GENES)
            if group == 'TMED7':
                log_vals[UP_ROW] += 2
                log_vals[DOWN_ROW] -= 2
            values = 2 ** log_vals

            # ~5% undetected, never in the rows with a known story
            mask = rng.random(N_GENES) < 0.05
            mask[:10] = False
            values[mask] = 0
            if group == 'EV':
                values[EV_ZERO_ROW] = 0
            data[f'{group}_{rep}'] = values

    df = pd.DataFrame(data)
    df.loc[NAN_ROW, 'TMED5_2'] = np.nan

    # Duplicate gene name, second copy must be dropped
    dup = df.iloc[[10]].copy()
    dup.loc[:, [c for c in df.columns if '_' in c and not c.startswith('Protein')]] = 1.0
    df = pd.concat([df, dup], ignore_index=True)

    return df


def make_config(tmp_path, input_file, **overrides):
    config = {
        'experiment': {'name': 'Test_Experiment'},
        'data_paths': {
            'input_file': str(input_file),
            'output_dir': str(tmp_path / 'output'),
        },
        'data_columns': {
            'gene_symbol': 'Genes',
            'metadata_pattern': 'Protein',
        },
        'groups': dict(GROUPS),
        'normalization': {'reference_columns': [5, 12]},
        'imputation': {'seed': 2025, 'n_estimators': 10, 'max_iter': 3},
        'statistics': {
            'numerator': 'TMED7',
            'denominator': 'TMED5',
            'adj_p_threshold': 0.05,
            'log2fc_threshold': 1.0,
        },
        'annotation': {
            'genes_of_interest': ['TMED5', 'TMED7', 'GORASP2', 'BLZF1'],
            'rename_map': {'GORASP2': 'GRASP55', 'BLZF1': 'Golgin-45'},
        },
    }
    for key, value in overrides.items():
        config[key] = value
    return config


@pytest.fixture
def sample_config(tmp_path):
    """Create a YAML config and matching CSV data for testing."""
    csv_path = tmp_path / 'coip.csv'
    make_intensity_frame().to_csv(csv_path, index=False)

    config = make_config(tmp_path, csv_path)
    config_path = str(tmp_path / 'test_config.yaml')
    with open(config_path, 'w') as f:
        yaml.safe_dump(config, f, sort_keys=False)

    return config_path, tmp_path


@pytest.fixture
def prepped_data(sample_config):
    """Run prep_ip and return the result for downstream tests."""
    from tmedfig import prep_ip

    config_path, _ = sample_config
    return prep_ip(config_path)


@pytest.fixture
def normed_data(prepped_data):
    from tmedfig import norm_ip

    return norm_ip(prepped_data)


@pytest.fixture
def imputed_data(normed_data):
    from tmedfig import impute_ip

    return impute_ip(normed_data)
