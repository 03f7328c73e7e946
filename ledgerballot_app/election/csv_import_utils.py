import csv
import io
from collections.abc import Mapping, Sequence

from tablib import Dataset


def _normalize_str(value: object) -> str:
    if value is None:
        return ""
    return str(value).strip()


def norm_csv_header(value: str) -> str:
    return "".join(ch for ch in value.strip().lower() if ch.isalnum())


def resolve_column_header(
    field_name: str,
    headers: Sequence[str],
    header_by_norm: Mapping[str, str],
    column_overrides: Mapping[str, str],
    *fallback_norms: str,
) -> str | None:
    override = _normalize_str(column_overrides.get(field_name, ""))
    if override:
        if override in headers:
            return override

        override_norm = norm_csv_header(override)
        resolved_override = header_by_norm.get(override_norm)
        if resolved_override:
            return resolved_override

        raise ValueError(f"Column '{override}' not found in CSV headers")

    for fallback in fallback_norms:
        fallback_norm = norm_csv_header(fallback)
        resolved = header_by_norm.get(fallback_norm)
        if resolved:
            return resolved
    return None


def sanitize_csv_cell(value: str) -> str:
    """Prefix formula-starting characters to prevent spreadsheet formula injection."""
    if value and value[0] in ("=", "+", "-", "@", "\t", "\r"):
        return f"'{value}"
    return value


def decode_csv_bytes(payload: bytes) -> str:
    try:
        return payload.decode("utf-8-sig")
    except UnicodeDecodeError:
        return payload.decode("utf-8", errors="replace")


def read_csv_rows(text: str) -> list[list[str]]:
    """Split CSV text into stripped rows, skipping blank lines.

    Rows keep their own width: short rows are the caller's to judge.
    """

    if not text.strip():
        return []

    sample = text[: 64 * 1024]
    try:
        dialect = csv.Sniffer().sniff(sample, delimiters=",;\t|")
    except csv.Error:
        dialect = csv.excel

    rows: list[list[str]] = []
    for raw_row in csv.reader(io.StringIO(text), dialect):
        row = [cell.strip() for cell in raw_row]
        if any(row):
            rows.append(row)
    return rows


def rows_to_csv(headers: Sequence[str], rows: Sequence[Sequence[str]]) -> str:
    dataset = Dataset(headers=list(headers))
    for row in rows:
        dataset.append([sanitize_csv_cell(str(cell)) for cell in row])
    return dataset.export("csv")
