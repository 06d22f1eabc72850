"""DICOM to NIfTI pipeline: scan, group, assemble and export one file per series."""

from __future__ import annotations

import logging
import re
import time
from pathlib import Path

from rich.markup import escape
from rich.progress import BarColumn, MofNCompleteColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table

from egami._console import console, print_diagnostics_summary, print_saved
from egami.core.assembler import assemble
from egami.core.grouping import group_records
from egami.core.types import ConversionReport, ConvertConfig, Diagnostics, Series, SeriesInfo
from egami.errors import ConversionFailed, EgamiError, InputNotFound
from egami.io.dicom_reader import (
    collect_inputs,
    describe_series,
    read_headers,
    read_record,
    read_records,
)
from egami.io.exporters import export_nifti

logger = logging.getLogger("egami")

NIFTI_SUFFIXES = (".nii", ".nii.gz")


def sanitize_name(name: str) -> str:
    """Replace every character outside ``[A-Za-z0-9_-]`` with an underscore."""
    return re.sub(r"[^A-Za-z0-9_-]", "_", name)


def series_stem(series: Series, index: int) -> str:
    """File stem for a series: its description, else ``series_<number|index>``."""
    if series.description:
        return sanitize_name(series.description)
    return f"series_{series.number or index}"


def split_nifti_suffix(path: Path) -> tuple[str, str]:
    """Split ``scan.nii.gz`` into ``("scan", ".nii.gz")``."""
    name = path.name
    for suffix in sorted(NIFTI_SUFFIXES, key=len, reverse=True):
        if name.lower().endswith(suffix):
            return name[: -len(suffix)], name[-len(suffix):]
    return path.stem, path.suffix


def make_output_path(base: Path, index: int, total: int) -> Path:
    """Generate output path for multi-series conversion.

    Single series: scan.nii
    Multiple series: scan_1.nii, scan_2.nii, ...
    """
    if total <= 1:
        return base
    stem, suffix = split_nifti_suffix(base)
    return base.with_name(f"{stem}_{index + 1}{suffix}")


def resolve_output_path(
    input_path: Path,
    output: Path | None,
    series: Series | None = None,
    index: int = 0,
    total: int = 1,
) -> Path:
    """Choose the NIfTI path for one series (or the single-file input).

    An existing directory receives ``<stem>.nii``; a path ending in ``.nii`` or
    ``.nii.gz`` is used as given (numbered when several series are written);
    any other path gets ``.nii`` appended. Without ``output`` the file lands
    next to the input.
    """
    input_path = Path(input_path)
    stem = series_stem(series, index) if series is not None else input_path.stem

    if output is None:
        target_dir = input_path if input_path.is_dir() else input_path.parent
        return target_dir / f"{stem}.nii"

    output = Path(output)
    if output.is_dir():
        return output / f"{stem}.nii"
    if not output.name.lower().endswith(NIFTI_SUFFIXES):
        output = output.with_name(f"{output.name}.nii")
    return make_output_path(output, index, total)


def run_convert_from_config(config: ConvertConfig) -> ConversionReport:
    """Convert a DICOM file or directory into NIfTI file(s)."""
    input_path = Path(config.input_path)
    if not input_path.exists():
        raise InputNotFound(f"Path not found: {input_path}")

    start = time.time()
    if input_path.is_file():
        report = convert_file(input_path, config.output)
    else:
        report = convert_directory(input_path, config.output)
    elapsed = time.time() - start

    console.print(
        f"\n[green]Converted {len(report.written)} series to NIfTI[/green] in {elapsed:.1f}s"
    )
    for path in report.written:
        print_saved(path)
    for series_id in report.failed:
        console.print(f"  [red]Failed:[/red] {escape(series_id)}")
    print_diagnostics_summary(report.diagnostics)
    return report


def convert_file(input_path: Path, output: Path | None = None) -> ConversionReport:
    """Convert a single (possibly multi-frame) DICOM file.

    Unlike directory conversion, every failure is raised.
    """
    report = ConversionReport()
    record = read_record(input_path)
    series = Series(
        series_id=record.series_id or input_path.stem,
        records=[record],
        description=record.series_description,
        number=record.series_number,
    )
    volume = assemble(series, report.diagnostics)
    target = resolve_output_path(input_path, output)
    export_nifti(volume, target)
    logger.info(f"Saved {target}")
    report.written.append(target)
    return report


def convert_directory(
    input_path: Path,
    output: Path | None = None,
    diagnostics: Diagnostics | None = None,
) -> ConversionReport:
    """Convert every series in a directory, continuing past per-series failures.

    Raises:
        InputNotFound: the directory holds no DICOM files.
        ConversionFailed: no series produced an output file.
    """
    report = ConversionReport(
        diagnostics=diagnostics if diagnostics is not None else Diagnostics()
    )
    files = collect_inputs(input_path)
    logger.info(f"Found {len(files)} DICOM files in {input_path}")

    records = read_records(files, report.diagnostics)
    series_list = group_records(records, report.diagnostics)
    if not series_list:
        raise ConversionFailed(f"No valid DICOM series found in {input_path}")
    logger.info(f"Found {len(series_list)} DICOM series")

    used: set[Path] = set()
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task("Converting series...", total=len(series_list))
        for i, series in enumerate(series_list):
            progress.update(task, description=f"Converting {escape(series.label)}")
            try:
                volume = assemble(series, report.diagnostics)
                target = resolve_output_path(input_path, output, series, i, len(series_list))
                if target in used:
                    target = make_output_path(target, i, 2)
                export_nifti(volume, target)
            except (EgamiError, OSError) as exc:
                report.failed[series.series_id] = str(exc)
                report.diagnostics.report(series.series_id, f"Failed to convert series: {exc}", exc)
            else:
                used.add(target)
                report.written.append(target)
                logger.info(f"Saved {target}")
            progress.advance(task)

    if not report.written:
        raise ConversionFailed(
            f"Failed to convert any DICOM series to NIfTI ({len(report.failed)} failed)"
        )
    return report


def analyze_series(input_path: Path) -> list[SeriesInfo]:
    """Group the DICOM files of ``input_path`` by series, reading headers only."""
    diagnostics = Diagnostics()
    records = read_headers(collect_inputs(input_path), diagnostics)
    return describe_series(group_records(records, diagnostics))


def print_series_table(series_list: list[SeriesInfo], input_path: Path) -> None:
    """Display a Rich table of the DICOM series found under ``input_path``."""
    table = Table(title=f"DICOM Series in {input_path}")
    table.add_column("#", style="bold", justify="right")
    table.add_column("Series UID", style="green", overflow="fold")
    table.add_column("Description", max_width=40)
    table.add_column("Files", justify="right")
    table.add_column("Frames", justify="right")
    table.add_column("Dimensions", style="cyan")

    for i, info in enumerate(series_list, 1):
        desc = info.description if info.description else "(no desc)"
        table.add_row(
            str(i),
            info.series_id,
            escape(desc),
            str(info.record_count),
            str(info.frame_count),
            info.dimensions,
        )

    console.print(table)
