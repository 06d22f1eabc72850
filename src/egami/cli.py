"""CLI entry point for egami."""

from __future__ import annotations

import logging
from pathlib import Path

import typer

from egami import __version__
from egami._console import console, err_console, print_error
from egami.core.types import ConvertConfig, DicomRenderConfig, SliceRenderConfig
from egami.errors import EgamiError

app = typer.Typer(
    name="egami",
    help="Convert DICOM series to NIfTI and render DICOM or NIfTI slices to PNG.",
    add_completion=False,
)

logger = logging.getLogger("egami")


def version_callback(value: bool):
    if value:
        console.print(f"egami {__version__}")
        raise typer.Exit()


def list_methods_callback(value: bool):
    if value:
        from egami.methods.registry import list_methods

        console.print("\n[bold]Pixel strategies and NIfTI decoders (in fallback order):[/bold]\n")
        for m in list_methods():
            status = "[green]available[/green]" if m["available"] else "[red]not installed[/red]"
            console.print(f"  [bold]{m['kind']:<8} {m['name']:<10}[/bold] {m['description']}")
            console.print(f"  {'':19} Status: {status} ({m['dependency_message']})")
        console.print()
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    list_methods: bool = typer.Option(
        None,
        "--list-methods",
        callback=list_methods_callback,
        is_eager=True,
        help="List pixel strategies and NIfTI decoders, then exit.",
    ),
):
    """Medical image conversion between DICOM, NIfTI and PNG."""


def _setup_logging(verbose: bool) -> None:
    log_level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=log_level, format="%(levelname)s: %(message)s")
    logger.setLevel(log_level)


def _run(action, verbose: bool) -> None:
    """Run a pipeline, mapping every failure to exit code 1."""
    try:
        action()
    except (EgamiError, ValueError, OSError) as e:
        print_error(str(e))
        raise typer.Exit(code=1)
    except Exception as e:
        print_error(f"{type(e).__name__}: {e}")
        if verbose:
            import traceback
            err_console.print(traceback.format_exc(), markup=False)
        raise typer.Exit(code=1)


@app.command("nii2png")
def nii2png(
    input_path: Path = typer.Option(
        ..., "-i", "--input", help="Input NIfTI file (.nii or .nii.gz)."
    ),
    output: Path = typer.Option(..., "-o", "--output", help="Output PNG file."),
    dimension: str = typer.Option(
        "z", "-d", "--dimension", help="Slice axis: x, y, z or 1, 2, 3."
    ),
    slice_index: int = typer.Option(0, "-s", "--slice", help="Slice index along the axis."),
    timepoint: int = typer.Option(0, "-t", "--timepoint", help="Timepoint of a 4D volume."),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Show detailed output."),
):
    """Render a slice of a NIfTI volume to PNG."""
    _setup_logging(verbose)
    config = SliceRenderConfig(
        input_path=input_path,
        output=output,
        axis=dimension,
        slice_index=slice_index,
        timepoint=timepoint,
        verbose=verbose,
    )

    from egami._pipeline_render import run_nii2png_from_config

    _run(lambda: run_nii2png_from_config(config), verbose)


@app.command("dcm2png")
def dcm2png(
    input_path: Path = typer.Option(
        ..., "-i", "--input", help="DICOM file or directory of DICOM files."
    ),
    output: Path = typer.Option(..., "-o", "--output", help="Output PNG file."),
    slice_index: int = typer.Option(
        0,
        "-s",
        "--slice",
        help="Frame index for a file, or file index (sorted by name) for a directory.",
    ),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Show detailed output."),
):
    """Render a DICOM frame to PNG with an automatic display window."""
    _setup_logging(verbose)
    config = DicomRenderConfig(
        input_path=input_path,
        output=output,
        slice_index=slice_index,
        verbose=verbose,
    )

    from egami._pipeline_render import run_dcm2png_from_config

    _run(lambda: run_dcm2png_from_config(config), verbose)


@app.command("dcm2nii")
def dcm2nii(
    input_path: Path = typer.Option(
        ..., "-i", "--input", help="DICOM file or directory of DICOM files."
    ),
    output: Path = typer.Option(
        None,
        "-o",
        "--output",
        help="Output NIfTI file or directory (default: next to the input).",
    ),
    do_list_series: bool = typer.Option(
        False,
        "--list-series",
        help="List DICOM series in the input directory and exit.",
    ),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Show detailed output."),
):
    """Convert DICOM data to NIfTI-1, one file per series."""
    _setup_logging(verbose)

    from egami._pipeline_convert import (
        analyze_series,
        print_series_table,
        run_convert_from_config,
    )

    if do_list_series:
        def _list():
            series_list = analyze_series(input_path)
            if not series_list:
                console.print("[yellow]No DICOM series found.[/yellow]")
                return
            print_series_table(series_list, input_path)

        _run(_list, verbose)
        return

    config = ConvertConfig(input_path=input_path, output=output, verbose=verbose)
    _run(lambda: run_convert_from_config(config), verbose)
