"""
Differential abundance for the Co-IP volcano pipeline.

Per-protein linear model on a no-intercept group design, one contrast
between two groups, empirical Bayes variance moderation (limma's
fitFDist / squeezeVar estimator), and Benjamini-Hochberg adjustment.
"""

import copy
import os

import numpy as np
import pandas as pd
from scipy.special import digamma, polygamma
from scipy.stats import t as t_dist
from statsmodels.stats.multitest import multipletests

from .errors import ConfigurationError
from .prep import group_labels
from .utils import save_data


def build_design(labels, levels):
    """
    Group-indicator design matrix without intercept.

    Parameters
    ----------
    labels : sequence of str
        One group label per sample column.
    levels : sequence of str
        Group order; one design column per level.

    Returns
    -------
    pd.DataFrame
        Samples x groups matrix of 0/1 floats, columns named by group.
    """
    levels = list(levels)
    unknown = sorted(set(labels) - set(levels))
    if unknown:
        raise ConfigurationError(f"Labels not among the groups: {', '.join(unknown)}")

    design = pd.get_dummies(pd.Categorical(labels, categories=levels)).astype(float)
    design.columns = levels

    empty = [lvl for lvl in levels if design[lvl].sum() == 0]
    if empty:
        raise ConfigurationError(f"Group(s) without samples: {', '.join(empty)}")

    return design


def fit_linear_model(Y, design):
    """
    Ordinary least squares for every row of ``Y`` at once.

    Parameters
    ----------
    Y : np.ndarray
        Proteins x samples matrix.
    design : np.ndarray or pd.DataFrame
        Samples x coefficients matrix.

    Returns
    -------
    dict
        'coefficients' (proteins x coefficients), 'sigma2' (residual
        variance per protein), 'df_residual' and 'xtx_inv'.
    """
    X = np.asarray(design, dtype=float)
    Y = np.asarray(Y, dtype=float)

    df_residual = X.shape[0] - np.linalg.matrix_rank(X)
    if df_residual < 1:
        raise ConfigurationError(
            "No residual degrees of freedom: every group needs at least two replicates"
        )

    xtx_inv = np.linalg.inv(X.T @ X)
    coefficients = Y @ X @ xtx_inv
    residuals = Y - coefficients @ X.T
    sigma2 = np.sum(residuals**2, axis=1) / df_residual

    return {
        'coefficients': coefficients,
        'sigma2': sigma2,
        'df_residual': df_residual,
        'xtx_inv': xtx_inv,
    }


def contrast_vector(levels, numerator, denominator):
    """Coefficient weights for ``numerator - denominator``."""
    levels = list(levels)
    for name in (numerator, denominator):
        if name not in levels:
            raise ConfigurationError(f"Contrast group '{name}' is not one of: {', '.join(levels)}")

    c = np.zeros(len(levels))
    c[levels.index(numerator)] = 1.0
    c[levels.index(denominator)] = -1.0
    return c


def trigamma_inverse(y, tol=1e-8, max_iter=50):
    """Solve trigamma(x) = y for x > 0 by Newton's method."""
    if y > 1e7:
        return 1.0 / np.sqrt(y)
    if y < 1e-6:
        return 1.0 / y

    x = 0.5 + 1.0 / y
    for _ in range(max_iter):
        tri = polygamma(1, x)
        dif = tri * (1 - tri / y) / polygamma(2, x)
        x = x + dif
        if -dif / x < tol:
            break
    return float(x)


def fit_f_dist(sigma2, df):
    """
    Prior scale and degrees of freedom for the residual variances.

    Method of moments on log variances, as in limma's fitFDist.

    Returns
    -------
    (float, float)
        ``s0_sq`` and ``d0``. ``d0`` is inf when the observed spread is
        fully explained by sampling error.
    """
    x = np.asarray(sigma2, dtype=float)
    x = x[np.isfinite(x)]
    n = x.size

    if n == 0:
        return np.nan, 0.0
    if n == 1:
        return float(x[0]), 0.0

    x = np.maximum(x, 0)
    m = np.median(x)
    if m == 0:
        m = 1.0
    x = np.maximum(x, 1e-5 * m)

    z = np.log(x)
    e = z - digamma(df / 2.0) + np.log(df / 2.0)
    emean = np.mean(e)
    evar = np.var(e, ddof=1) - polygamma(1, df / 2.0)

    if evar > 0:
        d0 = 2 * trigamma_inverse(evar)
        s0_sq = np.exp(emean + digamma(d0 / 2.0) - np.log(d0 / 2.0))
    else:
        d0 = np.inf
        s0_sq = np.exp(emean)

    return float(s0_sq), float(d0)


def squeeze_var(sigma2, df):
    """
    Shrink per-protein variances towards the fitted prior.

    Returns
    -------
    (np.ndarray, float, float)
        Posterior variances, prior ``d0`` and prior ``s0_sq``.
    """
    sigma2 = np.asarray(sigma2, dtype=float)
    s0_sq, d0 = fit_f_dist(sigma2, df)

    if np.isinf(d0):
        return np.full_like(sigma2, s0_sq), d0, s0_sq
    if d0 == 0:
        return sigma2.copy(), d0, s0_sq

    post = (d0 * s0_sq + df * sigma2) / (d0 + df)
    return post, d0, s0_sq


def moderated_contrast(fit, contrast):
    """
    Moderated t statistics for one contrast.

    Parameters
    ----------
    fit : dict
        Output of fit_linear_model().
    contrast : np.ndarray
        Contrast weights, one per coefficient.

    Returns
    -------
    dict
        'logFC', 't', 'P.Value', 'adj.P.Val' arrays plus 'd0', 's0_sq'
        and 'df_total'.
    """
    coefficients = fit['coefficients']
    df_residual = fit['df_residual']
    n_rows = coefficients.shape[0]

    log_fc = coefficients @ contrast
    unscaled_var = float(contrast @ fit['xtx_inv'] @ contrast)

    s2_post, d0, s0_sq = squeeze_var(fit['sigma2'], df_residual)

    # limma caps the total df at the pooled residual df
    df_total = min(df_residual + d0, df_residual * n_rows)

    se = np.sqrt(s2_post * unscaled_var)
    with np.errstate(divide='ignore', invalid='ignore'):
        t_stat = log_fc / se

    p_value = 2 * t_dist.sf(np.abs(t_stat), df=df_total)
    adj_p = multipletests(p_value, method='fdr_bh')[1]

    return {
        'logFC': log_fc,
        't': t_stat,
        'P.Value': p_value,
        'adj.P.Val': adj_p,
        'd0': d0,
        's0_sq': s0_sq,
        'df_total': df_total,
    }


def stat_ip(data, numerator=None, denominator=None):
    """
    Differential abundance between two groups.

    Fits a no-intercept group model per protein, computes
    ``mean(numerator) - mean(denominator)``, moderates variances across
    proteins and adjusts p-values with Benjamini-Hochberg.

    Parameters
    ----------
    data : dict
        Output from impute_ip().
    numerator : str, optional
        Group B of the contrast. Defaults to config['statistics']['numerator'].
    denominator : str, optional
        Group A of the contrast. Defaults to config['statistics']['denominator'].

    Returns
    -------
    dict
        Updated data dictionary with:
        - 'results': DataFrame (Protein, logFC, AveExpr, t, P.Value,
          adj.P.Val), ascending by P.Value
        - 'model': design, group means and moderation parameters
        - 'stats_params': contrast and thresholds

    Example
    -------
    >>> data = impute_ip(data)
    >>> data = stat_ip(data)
    """

    print("\n" + "="*80)
    print("DIFFERENTIAL ABUNDANCE ANALYSIS")
    print("="*80)

    imputed = data['imputed']
    config = data['config']
    group_cols = data['group_cols']
    stats_cfg = config['statistics']

    numerator = numerator or stats_cfg['numerator']
    denominator = denominator or stats_cfg['denominator']
    levels = list(group_cols.keys())

    print(f"\nContrast: {numerator} - {denominator}")
    print(f"Groups: {', '.join(levels)}")

    # =========================================================================
    # 1. DESIGN AND LINEAR MODEL
    # =========================================================================
    print(f"\n[1/3] Fitting linear models...")

    labels = group_labels(group_cols)
    design = build_design(labels, levels)
    design.index = imputed.columns

    fit = fit_linear_model(imputed.values, design.values)
    print(f"  > {len(imputed)} proteins, {design.shape[1]} group means, "
          f"{fit['df_residual']} residual df")

    # =========================================================================
    # 2. CONTRAST AND EMPIRICAL BAYES
    # =========================================================================
    print(f"\n[2/3] Computing moderated statistics...")

    contrast = contrast_vector(levels, numerator, denominator)
    mod = moderated_contrast(fit, contrast)
    print(f"  Prior df (d0): {mod['d0']:.3f}")
    print(f"  Prior variance (s0^2): {mod['s0_sq']:.4g}")

    results = pd.DataFrame({
        'Protein': imputed.index.astype(str),
        'logFC': mod['logFC'],
        'AveExpr': imputed.values.mean(axis=1),
        't': mod['t'],
        'P.Value': mod['P.Value'],
        'adj.P.Val': mod['adj.P.Val'],
    })
    results = results.sort_values('P.Value', kind='mergesort').reset_index(drop=True)

    # =========================================================================
    # 3. SUMMARY
    # =========================================================================
    print(f"\n[3/3] Summary...")

    adj_p = stats_cfg['adj_p_threshold']
    lfc = stats_cfg['log2fc_threshold']
    n_up = int(((results['adj.P.Val'] < adj_p) & (results['logFC'] > lfc)).sum())
    n_down = int(((results['adj.P.Val'] < adj_p) & (results['logFC'] < -lfc)).sum())
    print(f"  Up in {numerator}: {n_up}")
    print(f"  Up in {denominator}: {n_down}")

    data_updated = copy.copy(data)
    data_updated['results'] = results
    data_updated['model'] = {
        'design': design,
        'coefficients': pd.DataFrame(fit['coefficients'], index=imputed.index, columns=levels),
        'sigma2': fit['sigma2'],
        'df_residual': fit['df_residual'],
        'd0': mod['d0'],
        's0_sq': mod['s0_sq'],
        'df_total': mod['df_total'],
        'contrast': pd.Series(contrast, index=levels),
    }
    data_updated['stats_params'] = {
        'numerator': numerator,
        'denominator': denominator,
        'adj_p_threshold': adj_p,
        'log2fc_threshold': lfc,
        'correction': 'fdr_bh',
        'comparison': f"{numerator}_vs_{denominator}",
    }

    output_path = os.path.join(config['data_paths']['output_dir'], 'data_after_stat.pkl')
    save_data(data_updated, output_path)

    print("\n" + "="*80)
    print("DIFFERENTIAL ABUNDANCE COMPLETE")
    print("="*80)
    print(f"\nNext step: annotate_ip() to label significant proteins")
    print("="*80 + "\n")

    return data_updated
