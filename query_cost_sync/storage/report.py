"""
Report persistence.

Reconciliation records are written as a UTF-8 CSV file, one row per scanned
artifact in scan order, and read back verbatim by the patch phase.
"""

import csv
import re
from pathlib import Path, PureWindowsPath
from typing import Iterable, List, Union

from ..core.errors import ReportFormatError
from .models import ERROR, NOT_APPLICABLE, Classification, ComparisonRecord, CostValue

REPORT_COLUMNS = ("FileName", "ExpectedCost", "ActualCost", "Status", "Difference")
SENTINELS = (NOT_APPLICABLE, ERROR)

_INTEGER = re.compile(r"-?\d+")


def write_report(records: Iterable[ComparisonRecord], path: Union[str, Path]) -> Path:
    """Write records to a CSV report, preserving their order.

    Args:
        records: Records in the order artifacts were scanned
        path: Destination file path

    Returns:
        Path of the written report
    """
    report_path = Path(path)
    if report_path.parent and not report_path.parent.exists():
        report_path.parent.mkdir(parents=True, exist_ok=True)

    with open(report_path, "w", encoding="utf-8", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(REPORT_COLUMNS)
        for record in records:
            writer.writerow([
                record.file_name,
                _format_cell(record.expected_cost),
                _format_cell(record.actual_cost),
                record.classification.label,
                _format_cell(record.difference),
            ])
    return report_path


def read_report(path: Union[str, Path]) -> List[ComparisonRecord]:
    """Read a CSV report back into records.

    Rows missing a column are rejected rather than defaulted, and sentinel
    cells keep their literal string form.

    Raises:
        ReportFormatError: If the file is missing or malformed
    """
    report_path = Path(path)
    if not report_path.is_file():
        raise ReportFormatError(f"Report file not found: {path}")

    try:
        with open(report_path, "r", encoding="utf-8-sig", newline="") as f:
            reader = csv.reader(f, skipinitialspace=True)
            header = next(reader, None)
            if header is None:
                raise ReportFormatError(f"Report file is empty: {path}")
            header = [column.strip() for column in header]
            if tuple(header) != REPORT_COLUMNS:
                raise ReportFormatError(
                    f"Unexpected report header {header}, expected {list(REPORT_COLUMNS)}"
                )

            records = []
            for row in reader:
                if not row:
                    continue
                records.append(_parse_row(row, reader.line_num))
            return records
    except UnicodeDecodeError as e:
        raise ReportFormatError(f"Report file is not valid UTF-8: {path}") from e
    except csv.Error as e:
        raise ReportFormatError(f"Malformed CSV in {path}: {e}") from e


def _parse_row(row: List[str], line_num: int) -> ComparisonRecord:
    if len(row) != len(REPORT_COLUMNS):
        raise ReportFormatError(
            f"Line {line_num}: expected {len(REPORT_COLUMNS)} columns, got {len(row)}"
        )

    file_name, expected, actual, status, difference = (cell.strip() for cell in row)
    if not file_name:
        raise ReportFormatError(f"Line {line_num}: FileName is empty")
    if not _is_relative_name(file_name):
        raise ReportFormatError(
            f"Line {line_num}: FileName must be relative to the artifact directory, got {file_name!r}"
        )

    try:
        classification = Classification.from_label(status)
    except ValueError as e:
        raise ReportFormatError(f"Line {line_num}: {e}") from e

    return ComparisonRecord(
        file_name=file_name,
        expected_cost=_parse_cell(expected, "ExpectedCost", line_num),
        actual_cost=_parse_cell(actual, "ActualCost", line_num),
        classification=classification,
        difference=_parse_cell(difference, "Difference", line_num),
    )


def _is_relative_name(file_name: str) -> bool:
    # Windows parsing treats both separators, so drive and root forms are caught everywhere
    path = PureWindowsPath(file_name)
    return not (path.drive or path.root or ".." in path.parts)


def _format_cell(value: CostValue) -> str:
    return str(value)


def _parse_cell(value: str, column: str, line_num: int) -> CostValue:
    if _INTEGER.fullmatch(value):
        return int(value)
    if value in SENTINELS:
        return value
    raise ReportFormatError(
        f"Line {line_num}: {column} must be an integer or one of {list(SENTINELS)}, got {value!r}"
    )
