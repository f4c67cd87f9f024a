"""
Missing value imputation for the Co-IP volcano pipeline.

Each experimental group is imputed on its own with a random-forest
iterative imputer (the missForest approach), so no information is
shared across groups.
"""

import copy
import os
import warnings

import numpy as np
import pandas as pd
from sklearn.ensemble import RandomForestRegressor
from sklearn.exceptions import ConvergenceWarning
from sklearn.experimental import enable_iterative_imputer  # noqa: F401
from sklearn.impute import IterativeImputer

from .errors import ConvergenceError, DataFormatError
from .utils import save_data


def _check_block(block, name):
    """Raise ConvergenceError for blocks the forest cannot learn from."""
    n_observed = int(block.notna().sum().sum())

    if block.shape[1] < 2:
        raise ConvergenceError(
            f"Group '{name}' has a single column with missing values; "
            f"there are no other samples to predict them from"
        )

    empty = [str(c) for c in block.columns if block[c].isna().all()]
    if empty:
        raise ConvergenceError(
            f"Group '{name}' has column(s) with no observed values: {', '.join(empty)}"
        )

    if n_observed < 2:
        raise ConvergenceError(
            f"Group '{name}' has only {n_observed} observed value(s)"
        )


def impute_block(block, seed, name='block', n_estimators=100, max_iter=10, n_jobs=None):
    """
    Impute the missing values of one group's column block.

    A block without missing values is returned unchanged.

    Parameters
    ----------
    block : pd.DataFrame
        Normalized intensities for one group, NaN = missing.
    seed : int
        Random seed for both the imputer and the forest.
    name : str, optional
        Group name used in messages.
    n_estimators : int, optional
        Trees per forest (default: 100).
    max_iter : int, optional
        Maximum imputation rounds (default: 10).
    n_jobs : int, optional
        Parallel jobs for the forest (default: None).

    Returns
    -------
    pd.DataFrame
        Block of the same shape, index and columns with no NaN.

    Raises
    ------
    ConvergenceError
        If the block is degenerate or the imputer leaves non-finite values.
    """
    if not block.isna().any().any():
        return block.copy()

    _check_block(block, name)

    imputer = IterativeImputer(
        estimator=RandomForestRegressor(
            n_estimators=n_estimators,
            random_state=seed,
            n_jobs=n_jobs,
        ),
        max_iter=max_iter,
        initial_strategy='mean',
        random_state=seed,
    )

    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter('always', ConvergenceWarning)
        filled = imputer.fit_transform(block.values)

    for w in caught:
        if issubclass(w.category, ConvergenceWarning):
            print(f"  Warning: {name}: stopped after {imputer.n_iter_} rounds "
                  f"without meeting the early stopping criterion")
        else:
            warnings.warn_explicit(w.message, w.category, w.filename, w.lineno)

    if filled.shape != block.shape or not np.isfinite(filled).all():
        raise ConvergenceError(f"Imputation of group '{name}' left non-finite values")

    return pd.DataFrame(filled, index=block.index, columns=block.columns)


def load_imputed(path, group_cols):
    """
    Read an imputed matrix written by impute_ip().

    Parameters
    ----------
    path : str
        Path to imputed_data.csv.
    group_cols : dict
        Group name -> column names, used to check the header.

    Returns
    -------
    pd.DataFrame
        Imputed matrix indexed by gene.
    """
    if not os.path.exists(path):
        raise FileNotFoundError(f"Imputed data not found: {path}")

    df = pd.read_csv(path, index_col='Gene')
    expected = [str(c) for cols in group_cols.values() for c in cols]
    if [str(c) for c in df.columns] != expected:
        raise DataFormatError(
            f"Columns in {path} do not match the configured groups: "
            f"expected {expected}, found {list(df.columns)}"
        )
    if df.isna().any().any():
        raise DataFormatError(f"{path} still contains missing values")

    df.columns = [c for cols in group_cols.values() for c in cols]
    return df


def impute_ip(data, seed=None):
    """
    Impute missing values independently within each group.

    Zero entries in the normalized matrix are converted to NaN first and
    imputed like any other missing value.

    Parameters
    ----------
    data : dict
        Output from norm_ip().
    seed : int, optional
        Random seed. Defaults to config['imputation']['seed'].

    Returns
    -------
    dict
        Updated data dictionary with:
        - 'imputed': pd.DataFrame with columns in group order and no NaN
        - 'imputation': parameters used

    Example
    -------
    >>> data = norm_ip(data)
    >>> data = impute_ip(data)
    """

    print("\n" + "="*80)
    print("MISSING VALUE IMPUTATION")
    print("="*80)

    config = data['config']
    group_cols = data['group_cols']
    imp_cfg = config['imputation']

    if seed is None:
        seed = imp_cfg['seed']

    print(f"\nMethod: random forest (IterativeImputer)")
    print(f"Seed: {seed}")
    print(f"Trees: {imp_cfg['n_estimators']}, max rounds: {imp_cfg['max_iter']}")

    # log2 of a raw intensity of 1 is 0; zeros are undetected here too
    df = data['df'].mask(data['df'] == 0)
    n_zero = int((data['df'] == 0).sum().sum())
    if n_zero:
        print(f"  Converted {n_zero} zero value(s) to missing")

    missing_before = int(df.isna().sum().sum())

    # =========================================================================
    # 1. IMPUTE EACH GROUP
    # =========================================================================
    blocks = []
    for i, (name, cols) in enumerate(group_cols.items(), start=1):
        block = df[cols]
        n_missing = int(block.isna().sum().sum())
        print(f"\n[{i}/{len(group_cols)}] Imputing {name} ({n_missing} missing values)...")

        filled = impute_block(
            block,
            seed=seed,
            name=name,
            n_estimators=imp_cfg['n_estimators'],
            max_iter=imp_cfg['max_iter'],
            n_jobs=imp_cfg.get('n_jobs'),
        )
        blocks.append(filled)
        print(f"  > done")

    imputed = pd.concat(blocks, axis=1)

    missing_after = int(imputed.isna().sum().sum())
    print(f"\n  Missing values: {missing_before} -> {missing_after}")

    # =========================================================================
    # 2. SAVE IMPUTED MATRIX
    # =========================================================================
    tables_dir = data['output_dirs']['tables']
    imputed_path = os.path.join(tables_dir, 'imputed_data.csv')
    imputed.rename_axis('Gene').to_csv(imputed_path)
    print(f"  > Saved: imputed_data.csv")
    print(f"    Location: {tables_dir}")

    # =========================================================================
    # 3. UPDATE DATA DICTIONARY
    # =========================================================================
    data_updated = copy.copy(data)
    data_updated['imputed'] = imputed
    data_updated['imputation'] = {
        'method': 'randomforest',
        'seed': seed,
        'n_estimators': imp_cfg['n_estimators'],
        'max_iter': imp_cfg['max_iter'],
        'path': imputed_path,
    }

    output_path = os.path.join(config['data_paths']['output_dir'], 'data_after_impute.pkl')
    save_data(data_updated, output_path)

    print("\n" + "="*80)
    print("IMPUTATION COMPLETE")
    print("="*80)
    print(f"\nNext step: stat_ip() for differential abundance")
    print("="*80 + "\n")

    return data_updated
