"""
Normalization functions for the Co-IP volcano pipeline.

Log2 transformation followed by median scaling of every sample column
to a single reference median taken from the bait sample block.
"""

import copy
import os

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

from .errors import ConfigurationError
from .utils import save_data


def log2_transform(values):
    """
    Log2 of every positive entry.

    Literal zeros stay zero (never -inf) and NaN stays NaN. Works on
    scalars, numpy arrays and pandas objects.
    """
    if isinstance(values, (pd.DataFrame, pd.Series)):
        values = values.astype(float)
        positive = values > 0
        return values.where(~positive, np.log2(values.where(positive)))

    arr = np.asarray(values, dtype=float)
    positive = arr > 0
    out = np.where(positive, np.log2(np.where(positive, arr, 1.0)), arr)
    if out.ndim == 0:
        return float(out)
    return out


def _detected(values):
    """Entries that count towards a median: not missing and not zero."""
    values = np.asarray(values, dtype=float).ravel()
    return values[~np.isnan(values) & (values != 0)]


def reference_median(df, reference_columns):
    """
    Median of all detected entries in a contiguous block of columns.

    Parameters
    ----------
    df : pd.DataFrame
        Log2-transformed intensities.
    reference_columns : (int, int)
        1-indexed inclusive column range, e.g. (5, 12).

    Returns
    -------
    float
        The global reference median.

    Raises
    ------
    ConfigurationError
        If the range does not fit the matrix or contains no detected value.
    """
    start, end = reference_columns
    n_cols = df.shape[1]
    if start < 1 or end > n_cols or start > end:
        raise ConfigurationError(
            f"Reference columns {start}-{end} do not fit a matrix with {n_cols} sample columns"
        )

    block = df.iloc[:, start - 1:end]
    detected = _detected(block.values)
    if detected.size == 0:
        raise ConfigurationError(
            f"Reference columns {start}-{end} contain no detected values"
        )

    return float(np.median(detected))


def median_normalize(df, reference):
    """
    Rescale each column so its detected median equals ``reference``.

    Every entry becomes ``value / column_median * reference``. A column
    whose detected median is zero, or that has no detected entries at
    all, is returned unchanged. This pass-through reproduces the
    published analysis and is not treated as an error.

    Returns
    -------
    (pd.DataFrame, list)
        Normalized frame and the names of pass-through columns.
    """
    out = df.astype(float).copy()
    passthrough = []

    for col in out.columns:
        detected = _detected(out[col].values)
        col_median = float(np.median(detected)) if detected.size else 0.0
        if col_median != 0:
            out[col] = out[col] / col_median * reference
        else:
            passthrough.append(col)

    return out, passthrough


def norm_ip(data):
    """
    Log2-transform and median-normalize intensity data.

    Parameters
    ----------
    data : dict
        Output from prep_ip().

    Returns
    -------
    dict
        Updated data dictionary with normalized values in 'df' and the
        raw values kept under 'raw_df'.

    Example
    -------
    >>> data = prep_ip('config/tmed_coip.yaml')
    >>> data = norm_ip(data)
    """

    print("\n" + "="*80)
    print("NORMALIZATION")
    print("="*80)

    df = data['df'].copy()
    config = data['config']
    group_cols = data['group_cols']
    reference_columns = tuple(config['normalization']['reference_columns'])

    print(f"\nProcessing {len(df)} proteins across {df.shape[1]} samples")
    print(f"Reference columns: {reference_columns[0]}-{reference_columns[1]}")

    # =========================================================================
    # 1. LOG2 TRANSFORMATION
    # =========================================================================
    print(f"\n[1/3] Applying log2 transformation...")

    df_log2 = log2_transform(df)
    print(f"  > Log2 transformation applied to detected values")

    # =========================================================================
    # 2. MEDIAN NORMALIZATION
    # =========================================================================
    print(f"\n[2/3] Applying median normalization...")

    reference = reference_median(df_log2, reference_columns)
    print(f"  Global reference median: {reference:.3f}")

    df_norm, passthrough = median_normalize(df_log2, reference)

    if passthrough:
        print(f"  Warning: {len(passthrough)} column(s) have a zero median and were left unscaled: "
              f"{', '.join(map(str, passthrough))}")
    print(f"  > Median normalization applied")

    for name, cols in group_cols.items():
        values = df_norm[cols].values.flatten()
        values = values[~np.isnan(values)]
        if values.size:
            print(f"  {name}: median {np.median(values):.2f}, range {values.min():.2f} to {values.max():.2f}")

    # =========================================================================
    # 3. CREATE COMPARISON PLOTS
    # =========================================================================
    print(f"\n[3/3] Creating before/after comparison plots...")

    output_dir = data['output_dirs']['qc']
    n_groups = len(group_cols)
    fig, axes = plt.subplots(2, n_groups, figsize=(5*n_groups, 10))

    if n_groups == 1:
        axes = axes.reshape(2, 1)

    for idx, (name, cols) in enumerate(group_cols.items()):
        ax_before = axes[0, idx]
        for col in cols:
            values = df_log2[col].dropna()
            if len(values):
                ax_before.hist(values, bins=50, alpha=0.5, label=str(col)[:15])
        ax_before.set_title(f'{name} - Log2 Before Scaling', fontweight='bold')
        ax_before.set_xlabel('Log2 Intensity', fontsize=10)
        ax_before.set_ylabel('Frequency', fontsize=10)
        ax_before.legend(fontsize=8, loc='upper right')
        ax_before.grid(alpha=0.3)

        ax_after = axes[1, idx]
        for col in cols:
            values = df_norm[col].dropna()
            if len(values):
                ax_after.hist(values, bins=50, alpha=0.5, label=str(col)[:15])
        ax_after.set_title(f'{name} - After Median Normalization', fontweight='bold')
        ax_after.set_xlabel('Normalized Log2 Intensity', fontsize=10)
        ax_after.set_ylabel('Frequency', fontsize=10)
        ax_after.legend(fontsize=8, loc='upper right')
        ax_after.grid(alpha=0.3)

    plt.tight_layout()
    plt.savefig(f"{output_dir}/normalization_comparison.pdf", dpi=300, bbox_inches='tight')
    plt.close()

    print(f"  > Saved: normalization_comparison.pdf")

    # =========================================================================
    # 4. UPDATE DATA DICTIONARY
    # =========================================================================
    data_updated = copy.copy(data)
    data_updated['raw_df'] = data['df']
    data_updated['df'] = df_norm
    data_updated['normalization'] = {
        'method': 'log2_median',
        'reference_columns': reference_columns,
        'reference_median': reference,
        'passthrough_columns': passthrough,
    }

    output_path = os.path.join(config['data_paths']['output_dir'], 'data_after_norm.pkl')
    save_data(data_updated, output_path)

    print("\n" + "="*80)
    print("NORMALIZATION COMPLETE")
    print("="*80)
    print(f"\nNext step: impute_ip() for missing value imputation")
    print("="*80 + "\n")

    return data_updated
