"""
Data preparation functions for the Co-IP volcano pipeline.

Handles loading the raw intensity table, gene-name deduplication,
metadata column removal, and positional group assignment.
"""

import os

import pandas as pd

from .errors import ConfigurationError, DataFormatError
from .utils import _create_output_dirs, load_config, save_data


def _read_table(path):
    """Read a delimited or Excel table, choosing the reader by extension."""
    ext = os.path.splitext(str(path))[1].lower()
    if ext in ('.xlsx', '.xls'):
        return pd.read_excel(path)
    if ext in ('.tsv', '.txt', '.tab'):
        return pd.read_csv(path, sep='\t')
    return pd.read_csv(path)


def load_intensity_table(path, id_col='Genes', metadata_pattern='Protein'):
    """
    Read an intensity table into a gene-indexed numeric DataFrame.

    Gene names are uppercased and deduplicated (first occurrence wins).
    Columns whose name contains ``metadata_pattern`` are dropped. Empty
    cells and zero intensities both become NaN, the only "not detected"
    marker used downstream.

    Parameters
    ----------
    path : str
        Path to a .csv, .tsv/.txt or .xlsx file.
    id_col : str, optional
        Name of the identifier column (default: 'Genes').
    metadata_pattern : str, optional
        Substring marking metadata columns (default: 'Protein').

    Returns
    -------
    pd.DataFrame
        Rows indexed by uppercase gene name, one float column per sample.

    Raises
    ------
    DataFormatError
        If the identifier column is missing, no sample columns remain, or
        a sample column holds non-numeric values.
    """
    if not os.path.exists(path):
        raise FileNotFoundError(f"Input file not found: {path}")

    raw = _read_table(path)

    if id_col not in raw.columns:
        raise DataFormatError(
            f"Identifier column '{id_col}' not found in {path}. "
            f"Columns: {', '.join(map(str, raw.columns))}"
        )

    raw = raw.drop_duplicates(subset=id_col, keep='first').copy()

    sample_cols = [
        c for c in raw.columns
        if c != id_col and not (metadata_pattern and metadata_pattern in str(c))
    ]
    if not sample_cols:
        raise DataFormatError(f"No sample columns left in {path} after removing metadata")

    for col in sample_cols:
        if not pd.api.types.is_numeric_dtype(raw[col]):
            coerced = pd.to_numeric(raw[col], errors='coerce')
            bad = raw[col][coerced.isna() & raw[col].notna()]
            if len(bad) > 0:
                raise DataFormatError(
                    f"Column '{col}' contains non-numeric values, e.g. {bad.iloc[0]!r}"
                )
            raw[col] = coerced

    values = raw[sample_cols].astype(float)
    if (values < 0).any().any():
        raise DataFormatError("Intensities must be non-negative")

    df = values.mask(values == 0)
    df.index = pd.Index(raw[id_col].astype(str).str.upper(), name='Gene')

    # Case folding can collapse names that differed only in case
    df = df[~df.index.duplicated(keep='first')]

    return df


def assign_groups(columns, groups):
    """
    Lay the configured groups over the sample columns in order.

    Parameters
    ----------
    columns : sequence of str
        Sample column names in input order.
    groups : dict
        Ordered mapping of group name to replicate count.

    Returns
    -------
    dict
        Group name -> list of its column names.

    Raises
    ------
    ConfigurationError
        If the group sizes do not add up to the number of columns.
    """
    columns = list(columns)
    total = sum(groups.values())
    if total != len(columns):
        raise ConfigurationError(
            f"Group sizes ({', '.join(f'{k}={v}' for k, v in groups.items())}) "
            f"sum to {total}, but the table has {len(columns)} sample columns"
        )

    group_cols = {}
    start = 0
    for name, size in groups.items():
        group_cols[name] = columns[start:start + size]
        start += size

    return group_cols


def group_labels(group_cols):
    """One group label per column, in column order."""
    labels = []
    for name, cols in group_cols.items():
        labels.extend([name] * len(cols))
    return labels


def prep_ip(config):
    """
    Load and prepare Co-IP intensity data for analysis.

    This function:
    1. Loads and validates the configuration
    2. Reads the intensity table and deduplicates gene names
    3. Drops metadata columns and marks undetected values as missing
    4. Assigns sample columns to groups by position
    5. Creates the output directory structure

    Parameters
    ----------
    config : str or dict
        Path to YAML configuration file, or a configuration mapping.

    Returns
    -------
    dict
        Dictionary containing:
        - 'df': pd.DataFrame of raw intensities (NaN = not detected)
        - 'config': validated configuration dictionary
        - 'group_cols': maps group names to their column names
        - 'metadata': summary statistics about the data
        - 'output_dirs': paths to output directories

    Example
    -------
    >>> data = prep_ip('config/tmed_coip.yaml')
    >>> print(f"Loaded {len(data['df'])} proteins")
    >>> print(f"Groups: {list(data['group_cols'].keys())}")
    """

    # =========================================================================
    # 1. LOAD CONFIGURATION
    # =========================================================================
    print("\n" + "="*80)
    print("STEP 1: LOADING DATA AND CONFIGURATION")
    print("="*80)

    config = load_config(config)

    print(f"\n> Configuration loaded")
    print(f"  Experiment: {config['experiment']['name']}")
    print(f"  Groups: {', '.join(f'{k} (n={v})' for k, v in config['groups'].items())}")
    print(f"  Contrast: {config['statistics']['numerator']} - {config['statistics']['denominator']}")

    # =========================================================================
    # 2. LOAD INTENSITY TABLE
    # =========================================================================
    print(f"\n[1/3] Loading intensity data...")

    input_file = config['data_paths']['input_file']
    df = load_intensity_table(
        input_file,
        id_col=config['data_columns']['gene_symbol'],
        metadata_pattern=config['data_columns']['metadata_pattern'],
    )

    print(f"  > Loaded {df.shape[0]} unique genes, {df.shape[1]} sample columns")

    # =========================================================================
    # 3. ASSIGN GROUPS
    # =========================================================================
    print(f"\n[2/3] Assigning sample columns to groups...")

    group_cols = assign_groups(df.columns, config['groups'])
    for name, cols in group_cols.items():
        print(f"  {name}: {', '.join(map(str, cols))}")

    # =========================================================================
    # 4. CHECK DATA QUALITY
    # =========================================================================
    print(f"\n[3/3] Data quality summary...")

    print(f"\n  Missing values by group:")
    for name, cols in group_cols.items():
        total_values = len(df) * len(cols)
        missing = df[cols].isna().sum().sum()
        pct_missing = (missing / total_values) * 100 if total_values else 0.0
        print(f"    {name}: {pct_missing:.1f}% missing")

    empty_cols = [c for c in df.columns if df[c].isna().all()]
    if empty_cols:
        print(f"\n  Warning: {len(empty_cols)} sample column(s) have no detected values: "
              f"{', '.join(map(str, empty_cols))}")

    # =========================================================================
    # 5. CREATE OUTPUT DIRECTORIES
    # =========================================================================
    output_dir = config['data_paths']['output_dir']
    output_dirs = _create_output_dirs(output_dir)

    print(f"\n> Output directories created at: {output_dir}")

    metadata = {
        'n_proteins': len(df),
        'n_samples': df.shape[1],
        'n_groups': len(group_cols),
        'groups': list(group_cols.keys()),
        'replicates_per_group': {k: len(v) for k, v in group_cols.items()},
        'missing_values': int(df.isna().sum().sum()),
    }

    print("\n" + "="*80)
    print("DATA PREPARATION COMPLETE")
    print("="*80 + "\n")

    return_data = {
        'df': df,
        'config': config,
        'group_cols': group_cols,
        'metadata': metadata,
        'output_dirs': output_dirs
    }

    save_path = os.path.join(output_dir, 'data_after_prep.pkl')
    save_data(return_data, save_path)

    return return_data
