"""
Visualization functions for the Co-IP volcano pipeline.

Generates the post-imputation density plot and the labelled volcano plot.
"""

import os

import matplotlib.pyplot as plt
import numpy as np
import seaborn as sns
from adjustText import adjust_text

from .annotation import GENE_OF_INTEREST, NOT_SIGNIFICANT

# Consistent color palette for an arbitrary number of groups
_PALETTE = [
    '#1f77b4', '#2ca02c', '#d62728', '#ff7f0e', '#9467bd',
    '#8c564b', '#e377c2', '#7f7f7f', '#bcbd22', '#17becf',
]


def _group_color_map(group_cols):
    """Build a color map for an arbitrary number of groups."""
    groups = list(group_cols.keys())
    return {g: _PALETTE[i % len(_PALETTE)] for i, g in enumerate(groups)}


def volcano_colors(numerator, denominator):
    """Fixed category colors for the volcano plot."""
    return {
        GENE_OF_INTEREST: 'black',
        f'Upregulated in {numerator}': '#6666FF',
        f'Upregulated in {denominator}': '#FF6666',
        NOT_SIGNIFICANT: '#B3B3B3',
    }


def density_ip(data, filename='density_plot.png'):
    """
    Density of imputed intensities, one curve per group.

    Parameters
    ----------
    data : dict
        Output from impute_ip().
    filename : str, optional
        Output file name inside the figures directory.

    Returns
    -------
    str
        Path of the saved figure.
    """

    print("\n" + "="*80)
    print("CREATING DENSITY PLOT")
    print("="*80)

    imputed = data['imputed']
    group_cols = data['group_cols']

    sample_to_group = {col: name for name, cols in group_cols.items() for col in cols}

    df_long = imputed.rename_axis('Gene').reset_index().melt(
        id_vars='Gene', var_name='Sample', value_name='Intensity'
    )
    df_long['Group'] = df_long['Sample'].map(sample_to_group)

    fig, ax = plt.subplots(figsize=(8, 5))

    sns.kdeplot(
        data=df_long,
        x='Intensity',
        hue='Group',
        hue_order=list(group_cols.keys()),
        palette=_group_color_map(group_cols),
        common_norm=False,
        ax=ax,
    )

    ax.set_title('Post-Normalization and Imputation Density', fontsize=14)
    ax.set_xlabel('Log2-Transformed Intensity', fontsize=12)
    ax.set_ylabel('Density', fontsize=12)
    sns.despine(ax=ax, left=True, bottom=True)
    ax.grid(alpha=0.3)

    out_path = os.path.join(data['output_dirs']['figures'], filename)
    plt.tight_layout()
    plt.savefig(out_path, dpi=300, bbox_inches='tight')
    plt.close()

    print(f"\n  > Saved: {filename}")
    print("="*80 + "\n")

    return out_path


def volcano_ip(data):
    """
    Volcano plot of logFC against -log10(p-value).

    Points are colored by significance category; only genes of interest
    are enlarged and labelled (with their display names).

    Parameters
    ----------
    data : dict
        Output from annotate_ip().

    Returns
    -------
    str
        Path of the saved figure.

    Example
    -------
    >>> data = annotate_ip(data)
    >>> volcano_ip(data)
    """

    print("\n" + "="*80)
    print("CREATING VOLCANO PLOT")
    print("="*80)

    results = data['annotated']
    params = data['stats_params']
    numerator = params['numerator']
    denominator = params['denominator']

    colors = volcano_colors(numerator, denominator)
    neg_log10_p = -np.log10(results['P.Value'].clip(lower=1e-300))

    fig, ax = plt.subplots(figsize=(8, 6))

    for category in data['category_levels']:
        mask = (results['Significant'] == category).values
        ax.scatter(
            results.loc[mask, 'logFC'],
            neg_log10_p[mask],
            c=colors[category],
            label=category,
            s=15,
            alpha=0.5,
            edgecolors='none'
        )

    targets = (results['Significant'] == GENE_OF_INTEREST).values
    if targets.any():
        ax.scatter(
            results.loc[targets, 'logFC'],
            neg_log10_p[targets],
            c=colors[GENE_OF_INTEREST],
            s=45,
            edgecolors='none'
        )

        texts = []
        for (_, row), y in zip(results[targets].iterrows(), neg_log10_p[targets]):
            texts.append(ax.text(
                row['logFC'],
                y,
                row['Protein.renamed'],
                fontsize=10,
                fontweight='bold',
                color='black'
            ))

        adjust_text(
            texts,
            ax=ax,
            arrowprops=dict(arrowstyle='-', color='black', lw=0.5),
        )

    ax.set_xlabel(r'$\log_{2}$(Fold Change)', fontsize=12)
    ax.set_ylabel(r'$-\log_{10}$(p-value)', fontsize=12)
    ax.set_title(f'{numerator} vs {denominator} Co-IP', fontsize=14)
    ax.legend(loc='upper left', fontsize=9, frameon=False)
    for spine in ax.spines.values():
        spine.set_edgecolor('black')
    ax.grid(False)

    filename = f'volcano_plot_{numerator}_vs_{denominator}.png'
    out_path = os.path.join(data['output_dirs']['figures'], filename)
    plt.tight_layout()
    plt.savefig(out_path, dpi=300, bbox_inches='tight')
    plt.close()

    print(f"\n  > Saved: {filename}")
    print("="*80 + "\n")

    return out_path
