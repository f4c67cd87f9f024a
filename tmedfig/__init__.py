"""
TMED Figure Pipelines
=====================

Reproduces the two TMED manuscript figures: a volcano plot of Co-IP mass
spectrometry intensities and a bootstrapped ML tree of human TMED paralogs.

Main Functions
--------------
prep_ip()              - Load intensity table and assign groups
norm_ip()              - Log2 transform and median normalize
impute_ip()            - Random-forest imputation within each group
density_ip()           - Density plot of imputed intensities
stat_ip()              - Moderated t contrast between two groups
annotate_ip()          - Label significant proteins and write results
volcano_ip()           - Volcano plot
run_volcano_pipeline() - All of the above in order
run_tree_pipeline()    - Fetch, align, build and draw the TMED tree
save_data()            - Save analysis data for later
load_data()            - Load saved analysis data

Example Workflow
----------------
>>> from tmedfig import prep_ip, norm_ip, impute_ip, stat_ip, annotate_ip, volcano_ip
>>>
>>> data = prep_ip('tmed_coip.yaml')
>>> data = norm_ip(data)
>>> data = impute_ip(data)
>>> data = stat_ip(data)
>>> data = annotate_ip(data)
>>> volcano_ip(data)
"""

from .prep import prep_ip
from .normalization import norm_ip
from .imputation import impute_ip
from .statistics import stat_ip
from .annotation import annotate_ip
from .visualization import density_ip, volcano_ip
from .pipeline import run_volcano_pipeline
from .phylogeny import run_tree_pipeline
from .utils import save_data, load_data
from .errors import (
    TmedfigError,
    DataFormatError,
    InputFormatError,
    NetworkError,
    ConvergenceError,
    ConfigurationError,
)


__version__ = "0.1.0"

__all__ = [
    'prep_ip',
    'norm_ip',
    'impute_ip',
    'density_ip',
    'stat_ip',
    'annotate_ip',
    'volcano_ip',
    'run_volcano_pipeline',
    'run_tree_pipeline',
    'save_data',
    'load_data',
    'TmedfigError',
    'DataFormatError',
    'InputFormatError',
    'NetworkError',
    'ConvergenceError',
    'ConfigurationError',
]
