"""CSV export utilities."""

from __future__ import annotations

import csv
import io
from datetime import date, datetime
from typing import Callable, Iterable, Union

from flask import Response, stream_with_context

ColumnSource = Union[str, Callable[[object], object]]


def _serialize_value(value) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d %H:%M:%S")
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def _extract(row, source: ColumnSource):
    if callable(source):
        return source(row)
    if isinstance(row, dict):
        return row.get(source)
    return getattr(row, source, None)


def export_rows_to_csv(
    rows: Iterable[object],
    columns: Iterable[tuple[ColumnSource, str]],
    filename: str,
) -> Response:
    """Stream ``rows`` as a CSV attachment.

    Each column is ``(source, header)`` where ``source`` is an attribute or
    key name, or a callable taking the row.
    """

    columns = list(columns)
    headers = [header for _, header in columns]

    def generate():
        output = io.StringIO()
        writer = csv.writer(output)
        writer.writerow(headers)
        yield output.getvalue()
        output.seek(0)
        output.truncate(0)
        for row in rows:
            writer.writerow([_serialize_value(_extract(row, source)) for source, _ in columns])
            yield output.getvalue()
            output.seek(0)
            output.truncate(0)

    response = Response(stream_with_context(generate()), mimetype="text/csv")
    response.headers["Content-Disposition"] = f'attachment; filename="{filename}"'
    return response
