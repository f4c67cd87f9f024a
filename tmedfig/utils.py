"""
Utility functions for the TMED figure pipelines.

Internal helpers for configuration loading and validation, directory
management, and data serialization.
"""

import copy
import os
import pickle

import yaml

from .errors import ConfigurationError, DataFormatError


UNIPROT_TMED_QUERY = (
    "https://rest.uniprot.org/uniprotkb/stream?compressed=false&format=fasta"
    "&query=(gene:TMED*)%20AND%20(organism_id:9606)%20AND%20(reviewed:true)"
)

DEFAULT_CONFIG = {
    'experiment': {
        'name': 'TMED7_vs_TMED5_CoIP',
    },
    'data_paths': {
        'input_file': 'data/20240826_GrekaLab_MKG_original.csv',
        'output_dir': 'output',
    },
    'data_columns': {
        'gene_symbol': 'Genes',
        'metadata_pattern': 'Protein',
    },
    # Positional: first 4 sample columns are EV, next 4 TMED5, last 4 TMED7
    'groups': {
        'EV': 4,
        'TMED5': 4,
        'TMED7': 4,
    },
    'normalization': {
        'reference_columns': [5, 12],
    },
    'imputation': {
        'seed': 2025,
        'n_estimators': 100,
        'max_iter': 10,
    },
    'statistics': {
        'numerator': 'TMED7',
        'denominator': 'TMED5',
        'adj_p_threshold': 0.05,
        'log2fc_threshold': 1.0,
    },
    'annotation': {
        'genes_of_interest': ['TMED5', 'TMED7', 'GORASP2', 'BLZF1'],
        'rename_map': {
            'GORASP2': 'GRASP55',
            'BLZF1': 'Golgin-45',
        },
    },
    'phylogeny': {
        'query_url': UNIPROT_TMED_QUERY,
        'fasta_file': 'tmeds_uniprot.fasta',
        'exclude': ['TMED8'],
        'label_pattern': 'TMED[0-9]+',
        'aligner': 'muscle',
        'tree_builder': 'iqtree2',
        'model': 'WAG',
        'bootstrap': 1000,
        'seed': 2025,
        'threads': 1,
        'timeout': 60,
        'tree_file': 'tmed_phylogenetic_tree.pdf',
    },
}


def _load_config(config_path):
    """Load YAML config file."""
    with open(config_path, 'r') as f:
        return yaml.safe_load(f)


def _merge(base, override):
    """Recursively merge ``override`` into a copy of ``base``."""
    merged = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            # groups and rename_map are replaced wholesale, order matters
            if key in ('groups', 'rename_map'):
                merged[key] = dict(value)
            else:
                merged[key] = _merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def load_config(config):
    """
    Build a run configuration from a YAML path or a dict.

    User values are merged over ``DEFAULT_CONFIG`` and the result is
    validated. A fresh dict is returned on every call.

    Parameters
    ----------
    config : str, os.PathLike or dict
        Path to YAML configuration file, or an already loaded mapping.

    Returns
    -------
    dict
        Validated configuration.
    """
    if isinstance(config, dict):
        user = config
    else:
        user = _load_config(config)
        if user is None:
            user = {}
        elif not isinstance(user, dict):
            raise ConfigurationError(f"Config file {config} must contain a mapping")

    merged = _merge(DEFAULT_CONFIG, user)
    validate_config(merged)
    return merged


def validate_config(config):
    """Check the configuration for internal consistency."""
    groups = config.get('groups')
    if not isinstance(groups, dict) or len(groups) < 2:
        raise ConfigurationError("'groups' must map at least two group names to replicate counts")

    for name, size in groups.items():
        if isinstance(size, bool) or not isinstance(size, int) or size < 1:
            raise ConfigurationError(f"Group '{name}' must have a positive integer size, got {size!r}")

    stats_cfg = config['statistics']
    for key in ('numerator', 'denominator'):
        if stats_cfg[key] not in groups:
            raise ConfigurationError(
                f"Contrast {key} '{stats_cfg[key]}' is not one of the groups: {', '.join(groups)}"
            )
    if stats_cfg['numerator'] == stats_cfg['denominator']:
        raise ConfigurationError("Contrast numerator and denominator must be different groups")

    if not 0 < float(stats_cfg['adj_p_threshold']) <= 1:
        raise ConfigurationError("'adj_p_threshold' must be in (0, 1]")
    if float(stats_cfg['log2fc_threshold']) < 0:
        raise ConfigurationError("'log2fc_threshold' must be non-negative")

    ref = config['normalization']['reference_columns']
    if (not isinstance(ref, (list, tuple)) or len(ref) != 2
            or not all(isinstance(i, int) and not isinstance(i, bool) for i in ref)
            or ref[0] < 1 or ref[1] < ref[0]):
        raise ConfigurationError(
            f"'reference_columns' must be a 1-indexed [start, end] pair, got {ref!r}"
        )

    seed = config['imputation']['seed']
    if isinstance(seed, bool) or not isinstance(seed, int):
        raise ConfigurationError(f"Imputation seed must be an integer, got {seed!r}")

    return config


def _create_output_dirs(base_dir):
    """Create organized output directory structure."""
    dirs = {
        'base': base_dir,
        'figures': f"{base_dir}/figures",
        'qc': f"{base_dir}/figures/qc",
        'tables': f"{base_dir}/tables"
    }

    for dir_path in dirs.values():
        os.makedirs(dir_path, exist_ok=True)

    return dirs


def save_data(data, filename=None):
    """
    Save analysis data to pickle file for sequential workflow.

    Parameters
    ----------
    data : dict
        Analysis data dictionary (output from prep_ip, norm_ip, etc.)
    filename : str, optional
        Custom filename. If None, uses default based on output_dir in config.

    Returns
    -------
    str
        Path where data was saved.

    Example
    -------
    >>> data = prep_ip('config/tmed_coip.yaml')
    >>> save_data(data)  # Saves to output/data_checkpoint.pkl
    """
    if filename is None:
        output_dir = data['config']['data_paths']['output_dir']
        filename = os.path.join(output_dir, 'data_checkpoint.pkl')

    with open(filename, 'wb') as f:
        pickle.dump(data, f)

    size_mb = os.path.getsize(filename) / (1024 * 1024)

    print(f"\n  > Checkpoint saved: {filename} ({size_mb:.1f} MB)")

    return filename


_STAGE_KEYS = [
    ('prep', 'df'),
    ('norm', 'normalization'),
    ('impute', 'imputed'),
    ('stat', 'results'),
    ('annotate', 'annotated'),
]


def checkpoint_stages(data):
    """Names of the pipeline stages whose output is present in ``data``."""
    return [stage for stage, key in _STAGE_KEYS if key in data]


def load_data(filepath):
    """
    Load analysis data from pickle file.

    Parameters
    ----------
    filepath : str
        Path to saved pickle file.

    Returns
    -------
    dict
        Analysis data dictionary.

    Raises
    ------
    DataFormatError
        If the pickle does not hold a pipeline data dictionary.

    Example
    -------
    >>> from tmedfig import load_data
    >>> data = load_data('output/data_after_impute.pkl')
    >>> data = stat_ip(data)  # Continue from where you left off
    """
    if not os.path.exists(filepath):
        raise FileNotFoundError(f"Data file not found: {filepath}")

    print(f"\n{'='*80}")
    print(f"LOADING DATA")
    print(f"{'='*80}")

    with open(filepath, 'rb') as f:
        data = pickle.load(f)

    if not isinstance(data, dict) or 'config' not in data:
        raise DataFormatError(f"{filepath} is not a tmedfig checkpoint")

    print(f"Location: {filepath}")
    print(f"Stages done: {', '.join(checkpoint_stages(data)) or 'none'}")

    if 'metadata' in data:
        replicates = data['metadata']['replicates_per_group']
        print(f"  Proteins: {data['metadata']['n_proteins']}")
        print(f"  Groups: {', '.join(f'{g} (n={n})' for g, n in replicates.items())}")

    if 'imputation' in data:
        print(f"  Imputation: {data['imputation']['method']}")

    if 'stats_params' in data:
        params = data['stats_params']
        print(f"  Contrast: {params['numerator']} - {params['denominator']}")

    print(f"{'='*80}\n")

    return data
