"""Flatten raw Lighthouse audit items into fixed-column result records."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

from app.errors.exceptions import ConfigurationError

FieldMapping = tuple[tuple[str, str], ...]

# Output column -> Lighthouse audit id
DEFAULT_FIELD_MAPPING: FieldMapping = (
    ("firstContentfulPaint", "first-contentful-paint"),
    ("largestContentfulPaint", "largest-contentful-paint"),
    ("speedIndex", "speed-index"),
    ("totalBlockingTime", "total-blocking-time"),
    ("cumulativeLayoutShift", "cumulative-layout-shift"),
    ("interactive", "interactive"),
    ("serverResponseTime", "server-response-time"),
)

# Columns stamped on every record, independent of the mapping
STAMPED_FIELDS: tuple[str, ...] = (
    "performanceScore",
    "date",
    "datetime",
    "time",
    "url",
    "mode",
    "blockedRequests",
)

SCORE_SUFFIX = "_score"


def validate_field_mapping(mapping: FieldMapping) -> None:
    """
    Check a field mapping once, at startup.

    Raises:
        ConfigurationError: If the mapping is empty, has duplicate output
            columns, or collides with a stamped column.
    """
    if not mapping:
        raise ConfigurationError("Audit field mapping must not be empty")

    seen: set[str] = set()
    for pair in mapping:
        if len(pair) != 2 or not all(isinstance(part, str) and part for part in pair):
            raise ConfigurationError(f"Invalid field mapping entry: {pair!r}")
        output_field, _ = pair
        columns = (output_field, output_field + SCORE_SUFFIX)
        for column in columns:
            if column in seen:
                raise ConfigurationError(f"Duplicate output column in field mapping: {column}")
            if column in STAMPED_FIELDS:
                raise ConfigurationError(f"Field mapping shadows stamped column: {column}")
            seen.add(column)


def result_columns(mapping: FieldMapping) -> list[str]:
    """All columns a formatted record can carry, in table order."""
    columns: list[str] = []
    for output_field, _ in mapping:
        columns.append(output_field)
        columns.append(output_field + SCORE_SUFFIX)
    columns.extend(STAMPED_FIELDS)
    return columns


def _item_value(audits: dict[str, Any], key: str, attribute: str) -> Any:
    item = audits.get(key)
    if not item:
        return 0
    value = item.get(attribute)
    return 0 if value is None else value


def format_results(
    raw_results: Sequence[dict[str, Any] | None],
    performance_scores: Sequence[float | None],
    field_mapping: FieldMapping,
    *,
    mode: str | None = None,
    blocked_patterns: Sequence[str] | None = None,
    now: datetime | None = None,
) -> list[dict[str, Any]]:
    """
    Format raw audit results into flat records ready for BigQuery.

    raw_results[i] pairs with performance_scores[i]. Results that are None
    (the backend returned nothing for a URL without raising) are skipped.
    blockedRequests is only stamped when blocked_patterns is given.

    Raises:
        ValueError: If the two inputs differ in length.
    """
    if len(raw_results) != len(performance_scores):
        raise ValueError(
            f"{len(raw_results)} audit results but {len(performance_scores)} performance scores"
        )

    moment = now or datetime.now(UTC)
    moment = moment.astimezone(UTC)
    date = moment.strftime("%Y-%m-%d")
    timestamp = moment.replace(tzinfo=None).isoformat(timespec="microseconds")
    time_of_day = moment.strftime("%H:%M:%S.") + f"{moment.microsecond // 1000:03d}"

    records: list[dict[str, Any]] = []
    for audits, performance in zip(raw_results, performance_scores):
        if audits is None:
            continue

        record: dict[str, Any] = {}
        for output_field, raw_key in field_mapping:
            record[output_field] = _item_value(audits, raw_key, "numericValue")
            record[output_field + SCORE_SUFFIX] = _item_value(audits, raw_key, "score")

        record["performanceScore"] = performance
        record["date"] = date
        record["datetime"] = timestamp
        record["time"] = time_of_day
        record["url"] = audits.get("url")
        if mode is not None:
            record["mode"] = mode
        if blocked_patterns is not None:
            record["blockedRequests"] = ",".join(blocked_patterns)
        records.append(record)

    return records
