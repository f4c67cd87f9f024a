"""Command line interface for the TMED figure pipelines."""

from pathlib import Path

import typer

from tmedfig.errors import TmedfigError
from tmedfig.phylogeny import run_tree_pipeline
from tmedfig.pipeline import run_volcano_pipeline

app = typer.Typer(help="tmedfig: TMED manuscript figure pipelines")

TEMPLATE = Path(__file__).parent / "templates" / "tmed_coip.yaml"


def _fail(err):
    typer.echo(f"Error: {err}", err=True)
    raise typer.Exit(code=1)


@app.command()
def init(path: Path = typer.Argument(Path("tmed_coip.yaml"))):
    """
    Write an example config to the given path.
    """
    path.write_text(TEMPLATE.read_text())
    typer.echo(f"Template written to {path}")


@app.command()
def volcano(
    config: Path = typer.Option(..., help="Path to YAML config file"),
    resume: bool = typer.Option(False, help="Reuse an existing imputed_data.csv"),
):
    """
    Normalize, impute, test and plot the Co-IP intensities.
    """
    try:
        run_volcano_pipeline(str(config), resume=resume)
    except TmedfigError as err:
        _fail(err)


@app.command()
def tree(
    config: Path = typer.Option(..., help="Path to YAML config file"),
):
    """
    Fetch TMED sequences and build the bootstrapped ML tree.
    """
    try:
        run_tree_pipeline(str(config))
    except TmedfigError as err:
        _fail(err)


if __name__ == "__main__":
    app()
