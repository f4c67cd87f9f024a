"""
End-to-end runner for the Co-IP volcano pipeline.
"""

import copy
import os

from .annotation import annotate_ip
from .imputation import impute_ip, load_imputed
from .normalization import norm_ip
from .prep import prep_ip
from .statistics import stat_ip
from .visualization import density_ip, volcano_ip


def run_volcano_pipeline(config, resume=False):
    """
    Run prep -> norm -> impute -> density -> stat -> annotate -> volcano.

    Parameters
    ----------
    config : str or dict
        Path to YAML configuration file, or a configuration mapping.
    resume : bool, optional
        Reuse tables/imputed_data.csv from an earlier run instead of
        imputing again (default: False).

    Returns
    -------
    dict
        Final data dictionary from annotate_ip(), plus 'figures'.
    """
    data = prep_ip(config)
    data = norm_ip(data)

    imputed_path = os.path.join(data['output_dirs']['tables'], 'imputed_data.csv')
    if resume and os.path.exists(imputed_path):
        print(f"\nResuming from existing imputed matrix: {imputed_path}")
        data = copy.copy(data)
        data['imputed'] = load_imputed(imputed_path, data['group_cols'])
        data['imputation'] = {'method': 'loaded', 'path': imputed_path}
    else:
        data = impute_ip(data)

    density_path = density_ip(data)
    data = stat_ip(data)
    data = annotate_ip(data)
    volcano_path = volcano_ip(data)

    data['figures'] = {
        'density': density_path,
        'volcano': volcano_path,
    }

    print("\n" + "="*80)
    print("ANALYSIS COMPLETE")
    print("="*80)
    print(f"\nResults in: {data['config']['data_paths']['output_dir']}")
    print(f"  - tables/imputed_data.csv")
    print(f"  - tables/{os.path.basename(data['results_path'])}")
    print(f"  - figures/{os.path.basename(density_path)}")
    print(f"  - figures/{os.path.basename(volcano_path)}")
    print("="*80 + "\n")

    return data
