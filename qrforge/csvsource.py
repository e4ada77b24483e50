"""CSV source: one-shot parse of batch rows from CSV text or a file."""

import csv
import io
from dataclasses import dataclass
from pathlib import Path

from qrforge.errors import QrForgeError
from qrforge.formatters import detect_qr_type
from qrforge.logging import audit, get_logger

log = get_logger("csvsource")


class CsvFormatError(QrForgeError):
    """The CSV has no usable header or a malformed record."""


@dataclass(frozen=True)
class CsvRow:
    row_index: int
    content: str
    qr_type: str
    label: str | None = None


def _column(headers: list[str], name: str) -> int | None:
    for i, header in enumerate(headers):
        if header.strip().lower() == name:
            return i
    return None


def _cell(record: list[str], index: int | None) -> str | None:
    if index is None or index >= len(record):
        return None
    return record[index].strip()


def iter_rows(text: str):
    """Yield CsvRow items from CSV *text*.

    A ``content`` header is required; ``type`` and ``label`` are optional.
    Rows with blank content are skipped. ``row_index`` counts the yielded
    rows from 0, so indices are dense and never reused within one parse.

    Raises:
        CsvFormatError: missing header, missing content column, or a
            record the csv module cannot parse.
    """
    reader = csv.reader(io.StringIO(text.lstrip("\ufeff")))
    try:
        headers = next(reader)
    except StopIteration:
        raise CsvFormatError("CSV is empty") from None
    except csv.Error as e:
        raise CsvFormatError(f"Failed to read CSV headers: {e}") from e

    content_idx = _column(headers, "content")
    if content_idx is None:
        raise CsvFormatError("CSV must have a 'content' column")
    type_idx = _column(headers, "type")
    label_idx = _column(headers, "label")

    row_index = 0
    line = 1
    while True:
        line += 1
        try:
            record = next(reader)
        except StopIteration:
            break
        except csv.Error as e:
            raise CsvFormatError(f"Error at row {line}: {e}") from e

        content = _cell(record, content_idx) or ""
        if not content:
            continue
        qr_type = (_cell(record, type_idx) or "").lower() or detect_qr_type(content)
        label = _cell(record, label_idx) or None
        yield CsvRow(row_index=row_index, content=content, qr_type=qr_type, label=label)
        row_index += 1


def parse_csv(text: str) -> list[CsvRow]:
    rows = list(iter_rows(text))
    audit("csv.parsed", logger=log, rows=len(rows))
    return rows


def parse_csv_file(path: str | Path) -> list[CsvRow]:
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise CsvFormatError(f"Failed to read file: {e}") from e
    return parse_csv(text)
