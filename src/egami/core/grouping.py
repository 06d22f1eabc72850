"""Group slice records by series identity and order them within each series."""

from __future__ import annotations

import logging
from pathlib import Path

from egami.core.types import Diagnostics, Series, SliceRecord

logger = logging.getLogger(__name__)


def group_records(
    records: list[SliceRecord],
    diagnostics: Diagnostics | None = None,
) -> list[Series]:
    """Partition records by series id and sort each partition.

    Records without a series id are reported and dropped. Series are returned
    in the order their id is first seen in ``records``.
    """
    diagnostics = diagnostics if diagnostics is not None else Diagnostics()
    groups: dict[str, Series] = {}

    for record in records:
        if not record.series_id:
            diagnostics.report(
                record.filename or "<unnamed record>",
                "No SeriesInstanceUID found, skipping",
            )
            continue

        series = groups.get(record.series_id)
        if series is None:
            series = Series(series_id=record.series_id)
            groups[record.series_id] = series
        if series.description is None and record.series_description:
            series.description = record.series_description
        if series.number is None and record.series_number is not None:
            series.number = record.series_number
        series.records.append(record)

    for series in groups.values():
        series.records = sort_records(series.records)
        logger.debug(
            f"Series {series.series_id}: {series.record_count} records"
        )

    return list(groups.values())


def sort_records(records: list[SliceRecord]) -> list[SliceRecord]:
    """Sort by instance index when every record has one, else by file name.

    A partition with partial instance indices is sorted entirely by file name
    so the order never mixes numeric and lexical keys.
    """
    if records and all(r.instance_index is not None for r in records):
        return sorted(records, key=lambda r: r.instance_index)
    return sorted(records, key=_filename_key)


def _filename_key(record: SliceRecord) -> tuple[str, str]:
    return (Path(record.filename).name, record.filename)
