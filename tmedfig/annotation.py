"""
Significance labelling for differential abundance results.

Categories come from an ordered list of (label, predicate) rules; the
first rule that matches a protein decides its label.
"""

import copy
import os

import numpy as np
import pandas as pd

from .utils import save_data

GENE_OF_INTEREST = 'Gene of interest'
NOT_SIGNIFICANT = 'Not significant'


def significance_rules(genes_of_interest, numerator, denominator,
                       adj_p_threshold=0.05, log2fc_threshold=1.0):
    """
    Build the ordered labelling rules.

    Order: gene of interest, up in ``numerator``, up in ``denominator``,
    not significant. The last rule always matches.

    Returns
    -------
    list of (str, callable)
        Each callable takes a result row (mapping with 'Protein',
        'logFC', 'adj.P.Val') and returns bool.
    """
    targets = {str(g).upper() for g in genes_of_interest}

    return [
        (GENE_OF_INTEREST,
         lambda row: str(row['Protein']).upper() in targets),
        (f'Upregulated in {numerator}',
         lambda row: row['adj.P.Val'] < adj_p_threshold and row['logFC'] > log2fc_threshold),
        (f'Upregulated in {denominator}',
         lambda row: row['adj.P.Val'] < adj_p_threshold and row['logFC'] < -log2fc_threshold),
        (NOT_SIGNIFICANT,
         lambda row: True),
    ]


def classify(row, rules):
    """Label of the first rule whose predicate holds for ``row``."""
    for label, predicate in rules:
        if predicate(row):
            return label
    return NOT_SIGNIFICANT


def category_levels(rules):
    """Category order for plotting and tables, taken from the rules."""
    return [label for label, _ in rules]


def results_filename(numerator, denominator):
    return f'fold_change_data_{numerator}_vs_{denominator}.csv'


def read_results(path, levels=None):
    """
    Read an annotated result table written by annotate_ip().

    Numeric columns come back as float64 and, when ``levels`` is given,
    'Significant' is restored as an ordered categorical.
    """
    results = pd.read_csv(path, dtype={'Protein': str, 'Protein.renamed': str})
    for col in ('logFC', 'AveExpr', 't', 'P.Value', 'adj.P.Val'):
        if col in results.columns:
            results[col] = results[col].astype(np.float64)
    if levels is not None and 'Significant' in results.columns:
        results['Significant'] = pd.Categorical(results['Significant'], categories=levels, ordered=True)
    return results


def annotate_ip(data):
    """
    Label every protein and write the result table.

    Parameters
    ----------
    data : dict
        Output from stat_ip().

    Returns
    -------
    dict
        Updated data dictionary with 'annotated' (results plus
        'Significant' and 'Protein.renamed') and 'category_levels'.

    Example
    -------
    >>> data = stat_ip(data)
    >>> data = annotate_ip(data)
    """

    print("\n" + "="*80)
    print("ANNOTATING RESULTS")
    print("="*80)

    config = data['config']
    params = data['stats_params']
    ann_cfg = config['annotation']

    numerator = params['numerator']
    denominator = params['denominator']

    rules = significance_rules(
        ann_cfg['genes_of_interest'],
        numerator,
        denominator,
        adj_p_threshold=params['adj_p_threshold'],
        log2fc_threshold=params['log2fc_threshold'],
    )
    levels = category_levels(rules)

    results = data['results'].copy()
    results['Significant'] = [classify(row, rules) for row in results.to_dict('records')]
    results['Protein.renamed'] = results['Protein'].replace(ann_cfg.get('rename_map') or {})
    results['Significant'] = pd.Categorical(results['Significant'], categories=levels, ordered=True)

    print(f"\nCategory counts:")
    for label, count in results['Significant'].value_counts(sort=False).items():
        print(f"  {label}: {count}")

    tables_dir = data['output_dirs']['tables']
    filename = results_filename(numerator, denominator)
    results_path = os.path.join(tables_dir, filename)
    results.to_csv(results_path, index=False, float_format='%.10g')

    print(f"\n  > Saved: {filename}")
    print(f"    Location: {tables_dir}")
    print(f"    {len(results)} proteins x {len(results.columns)} columns")

    data_updated = copy.copy(data)
    data_updated['annotated'] = results
    data_updated['category_levels'] = levels
    data_updated['results_path'] = results_path

    output_path = os.path.join(config['data_paths']['output_dir'], 'data_after_annotate.pkl')
    save_data(data_updated, output_path)

    print("\n" + "="*80)
    print("ANNOTATION COMPLETE")
    print("="*80 + "\n")

    return data_updated
