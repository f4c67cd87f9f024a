"""
TMED paralog phylogeny.

Downloads reviewed human TMED sequences from UniProt, drops the TMED8
pseudogene, shortens labels to gene names, aligns with MUSCLE and builds
a maximum likelihood tree with bootstrap support in IQ-TREE. The tree is
drawn with Bio.Phylo and saved as PDF.

External programs
-----------------
muscle   - multiple sequence alignment (v5 command line)
iqtree2  - ML tree search and nonparametric bootstrap
"""

import os
import re
import shutil
import subprocess

import matplotlib.pyplot as plt
import requests
from Bio import Phylo, SeqIO

from .errors import ConfigurationError, ConvergenceError, DataFormatError, NetworkError
from .utils import load_config


def fetch_fasta(url, dest, timeout=60):
    """
    Download a FASTA file in a single attempt.

    Raises
    ------
    NetworkError
        On any request failure or an empty response body.
    """
    try:
        response = requests.get(url, timeout=timeout)
        response.raise_for_status()
    except requests.exceptions.RequestException as e:
        raise NetworkError(f"Could not fetch sequences from {url}: {e}") from e

    if not response.text.strip():
        raise NetworkError(f"Empty response from {url}")

    with open(dest, 'w') as f:
        f.write(response.text)

    return dest


def filter_records(records, exclude):
    """Drop records whose id or description mentions any excluded token."""
    kept = []
    for record in records:
        text = f"{record.id} {record.description}"
        if not any(token in text for token in exclude):
            kept.append(record)
    return kept


def simplify_labels(records, pattern='TMED[0-9]+'):
    """
    Rename records to the first match of ``pattern`` in their header.

    'sp|Q13445|TMED1_HUMAN ...' becomes 'TMED1'.
    """
    regex = re.compile(pattern)
    renamed = []
    for record in records:
        match = regex.search(f"{record.id} {record.description}")
        if match is None:
            raise DataFormatError(f"No label matching '{pattern}' in header '{record.description}'")
        record.id = match.group(0)
        record.name = record.id
        record.description = ''
        renamed.append(record)

    labels = [r.id for r in renamed]
    duplicates = sorted({l for l in labels if labels.count(l) > 1})
    if duplicates:
        raise DataFormatError(f"Duplicate labels after simplification: {', '.join(duplicates)}")

    return renamed


def _run_tool(cmd, tool):
    """Run an external program, mapping failures onto pipeline errors."""
    if shutil.which(cmd[0]) is None:
        raise ConfigurationError(f"{tool} executable '{cmd[0]}' not found on PATH")

    try:
        return subprocess.run(cmd, capture_output=True, text=True, check=True)
    except subprocess.CalledProcessError as e:
        raise ConvergenceError(f"{tool} failed (exit {e.returncode}): {(e.stderr or '')[:500]}") from e


def align_sequences(fasta_path, out_path, aligner='muscle'):
    """Multiple sequence alignment with MUSCLE; returns the aligned FASTA path."""
    _run_tool([aligner, '-align', fasta_path, '-output', out_path], 'Aligner')

    if not os.path.exists(out_path) or os.path.getsize(out_path) == 0:
        raise ConvergenceError(f"Aligner produced no output at {out_path}")

    return out_path


def build_ml_tree(alignment_path, prefix, tree_builder='iqtree2', model='WAG',
                  bootstrap=1000, seed=2025, threads=1):
    """
    Maximum likelihood tree with nonparametric bootstrap.

    Returns
    -------
    str
        Path to the ML tree in Newick format with bootstrap support
        as internal node labels.
    """
    cmd = [
        tree_builder,
        '-s', alignment_path,
        '-st', 'AA',
        '-m', model,
        '-b', str(bootstrap),
        '-seed', str(seed),
        '-T', str(threads),
        '-pre', prefix,
        '-redo',
        '-quiet',
    ]
    _run_tool(cmd, 'Tree builder')

    tree_path = f"{prefix}.treefile"
    if not os.path.exists(tree_path):
        raise ConvergenceError(f"Tree builder produced no tree at {tree_path}")

    return tree_path


def render_tree(tree_path, out_path, width=6, height=3):
    """Ladderize and draw the tree with bootstrap support on internal nodes."""
    tree = Phylo.read(tree_path, 'newick')
    tree.ladderize(reverse=True)

    fig, ax = plt.subplots(figsize=(width, height))

    def branch_label(clade):
        if clade.is_terminal() or clade.confidence is None:
            return None
        return f"{clade.confidence:g}"

    Phylo.draw(
        tree,
        axes=ax,
        do_show=False,
        branch_labels=branch_label,
        label_func=lambda c: c.name if c.is_terminal() else None,
    )

    ax.set_ylabel('')
    ax.set_yticks([])
    for side in ('top', 'right', 'left'):
        ax.spines[side].set_visible(False)

    plt.tight_layout()
    plt.savefig(out_path, bbox_inches='tight')
    plt.close()

    return tree


def run_tree_pipeline(config):
    """
    Build and draw the TMED phylogenetic tree.

    Parameters
    ----------
    config : str or dict
        Path to YAML configuration file, or a configuration mapping.

    Returns
    -------
    dict
        Paths of the downloaded FASTA, alignment, tree and PDF, and the
        sequence labels used.

    Example
    -------
    >>> run_tree_pipeline('config/tmed_coip.yaml')
    """

    print("\n" + "="*80)
    print("TMED PHYLOGENETIC TREE")
    print("="*80)

    config = load_config(config)
    phylo_cfg = config['phylogeny']
    output_dir = config['data_paths']['output_dir']
    os.makedirs(output_dir, exist_ok=True)

    # =========================================================================
    # 1. DOWNLOAD
    # =========================================================================
    print(f"\n[1/5] Downloading sequences from UniProt...")

    fasta_path = os.path.join(output_dir, phylo_cfg['fasta_file'])
    fetch_fasta(phylo_cfg['query_url'], fasta_path, timeout=phylo_cfg['timeout'])

    records = list(SeqIO.parse(fasta_path, 'fasta'))
    if not records:
        raise DataFormatError(f"No FASTA records in {fasta_path}")
    print(f"  > Downloaded {len(records)} sequences")

    # =========================================================================
    # 2. FILTER AND RELABEL
    # =========================================================================
    print(f"\n[2/5] Filtering and relabelling...")

    before = len(records)
    records = filter_records(records, phylo_cfg['exclude'])
    print(f"  Removed {before - len(records)} record(s) matching {', '.join(phylo_cfg['exclude'])}")

    records = simplify_labels(records, phylo_cfg['label_pattern'])
    if len(records) < 3:
        raise DataFormatError(f"Need at least 3 sequences for a tree, got {len(records)}")

    for record in records:
        print(f"    {record.id:8} {len(record.seq)} aa")

    clean_path = os.path.join(output_dir, 'tmeds_clean.fasta')
    SeqIO.write(records, clean_path, 'fasta')

    # =========================================================================
    # 3. ALIGN
    # =========================================================================
    print(f"\n[3/5] Aligning with {phylo_cfg['aligner']}...")

    aln_path = os.path.join(output_dir, 'tmeds_aligned.fasta')
    align_sequences(clean_path, aln_path, aligner=phylo_cfg['aligner'])
    print(f"  > Saved: {os.path.basename(aln_path)}")

    # =========================================================================
    # 4. ML TREE + BOOTSTRAP
    # =========================================================================
    print(f"\n[4/5] ML tree ({phylo_cfg['model']}) with {phylo_cfg['bootstrap']} bootstrap replicates...")

    prefix = os.path.join(output_dir, 'tmed_tree')
    tree_path = build_ml_tree(
        aln_path,
        prefix,
        tree_builder=phylo_cfg['tree_builder'],
        model=phylo_cfg['model'],
        bootstrap=phylo_cfg['bootstrap'],
        seed=phylo_cfg['seed'],
        threads=phylo_cfg['threads'],
    )
    print(f"  > Saved: {os.path.basename(tree_path)}")

    # =========================================================================
    # 5. DRAW
    # =========================================================================
    print(f"\n[5/5] Drawing tree...")

    pdf_path = os.path.join(output_dir, phylo_cfg['tree_file'])
    render_tree(tree_path, pdf_path)
    print(f"  > Saved: {phylo_cfg['tree_file']}")

    print("\n" + "="*80)
    print("PHYLOGENETIC TREE COMPLETE")
    print("="*80 + "\n")

    return {
        'fasta': fasta_path,
        'alignment': aln_path,
        'tree': tree_path,
        'figure': pdf_path,
        'labels': [r.id for r in records],
    }
