"""
Record Summary

Quick descriptive statistics over extracted SIMEM price records, using the
upstream field names FechaHora (timestamp), CodigoVariable (variable code)
and Valor (numeric value). Values that do not parse are skipped.
"""

from datetime import datetime
from typing import Any, Iterable, Optional

from simem.utils.schemas import Record, RecordSummary

TIMESTAMP_FIELD = "FechaHora"
VARIABLE_FIELD = "CodigoVariable"
VALUE_FIELD = "Valor"

VARIABLE_NAMES = {
    "PB_Nal": "Precio Bolsa Nacional",
    "PB_Int": "Precio Bolsa Internacional",
    "PB_Tie": "Precio Bolsa TIE (Ecuador)",
}


def variable_display_name(code: str) -> str:
    return VARIABLE_NAMES.get(code, code)


def _to_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if number == number else None  # NaN


def _to_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def summarize_records(records: Iterable[Record]) -> RecordSummary:
    records = list(records)
    if not records:
        return RecordSummary()

    timestamps = []
    values = []
    variables: dict[str, None] = {}

    for record in records:
        ts = _to_datetime(record.get(TIMESTAMP_FIELD))
        if ts is not None:
            timestamps.append(ts)

        code = record.get(VARIABLE_FIELD)
        if code is not None:
            variables.setdefault(str(code), None)

        value = _to_float(record.get(VALUE_FIELD))
        if value is not None:
            values.append(value)

    # Mixed naive/aware timestamps do not compare; keep the dominant kind.
    aware = [t for t in timestamps if t.tzinfo is not None]
    naive = [t for t in timestamps if t.tzinfo is None]
    comparable = aware if len(aware) >= len(naive) else naive

    return RecordSummary(
        total_records=len(records),
        first_timestamp=min(comparable) if comparable else None,
        last_timestamp=max(comparable) if comparable else None,
        variables=list(variables),
        avg_value=sum(values) / len(values) if values else 0.0,
        min_value=min(values) if values else 0.0,
        max_value=max(values) if values else 0.0,
    )
