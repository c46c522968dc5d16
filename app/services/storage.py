"""BigQuery persistence for formatted audit records."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from google.api_core.exceptions import GoogleAPIError
from google.auth.exceptions import DefaultCredentialsError
from google.cloud import bigquery
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from app.core.formatter import DEFAULT_FIELD_MAPPING, SCORE_SUFFIX, FieldMapping
from app.errors.exceptions import StorageWriteError

if TYPE_CHECKING:
    from app.config.settings import Config

logger = logging.getLogger(__name__)

PARTITION_EXPIRATION_MS = 7_776_000_000  # 90 days


def result_schema(mapping: FieldMapping = DEFAULT_FIELD_MAPPING) -> list[bigquery.SchemaField]:
    """Table schema for formatted records; also the column allow-list for inserts."""
    schema: list[bigquery.SchemaField] = []
    for output_field, _ in mapping:
        schema.append(bigquery.SchemaField(output_field, "FLOAT"))
        schema.append(bigquery.SchemaField(output_field + SCORE_SUFFIX, "FLOAT"))
    schema.extend(
        [
            bigquery.SchemaField("performanceScore", "FLOAT"),
            bigquery.SchemaField("date", "DATE", mode="REQUIRED"),
            bigquery.SchemaField("datetime", "DATETIME"),
            bigquery.SchemaField("time", "TIME"),
            bigquery.SchemaField("url", "STRING", mode="REQUIRED"),
            bigquery.SchemaField("mode", "STRING"),
            bigquery.SchemaField("blockedRequests", "STRING"),
        ]
    )
    return schema


def prepare_rows(
    records: Sequence[dict[str, Any]], allowed_fields: Sequence[str]
) -> list[dict[str, Any]]:
    """Keep only allow-listed columns; anything else on a record is dropped."""
    return [{name: record.get(name) for name in allowed_fields} for record in records]


def create_date_partition_table(
    client: bigquery.Client,
    dataset: str,
    table: str,
    location: str = "US",
    mapping: FieldMapping = DEFAULT_FIELD_MAPPING,
) -> bigquery.Table:
    """Create the dataset if needed and the results table, partitioned by day on date."""
    dataset_ref = bigquery.Dataset(f"{client.project}.{dataset}")
    dataset_ref.location = location
    client.create_dataset(dataset_ref, exists_ok=True)

    table_ref = bigquery.Table(f"{client.project}.{dataset}.{table}", schema=result_schema(mapping))
    table_ref.time_partitioning = bigquery.TimePartitioning(
        type_=bigquery.TimePartitioningType.DAY,
        field="date",
        expiration_ms=PARTITION_EXPIRATION_MS,
    )
    created = client.create_table(table_ref, exists_ok=True)
    logger.info(f"Table {created.full_table_id} created.")
    return created


class ResultWriter:
    """
    Streams formatted records into BigQuery.

    Writes are a best-effort side effect of an audit: failures are retried a
    few times, then logged and dropped, and never reach the HTTP caller.
    """

    def __init__(
        self,
        client: bigquery.Client,
        dataset: str,
        table: str,
        mapping: FieldMapping = DEFAULT_FIELD_MAPPING,
        attempts: int = 3,
        backoff: float = 1.0,
    ):
        self.client = client
        self.table_id = f"{client.project}.{dataset}.{table}"
        self.allowed_fields = [f.name for f in result_schema(mapping)]
        self.attempts = attempts
        self.backoff = backoff

    def _insert(self, rows: list[dict[str, Any]]) -> None:
        try:
            errors = self.client.insert_rows_json(self.table_id, rows)
        except GoogleAPIError as e:
            raise StorageWriteError(f"BigQuery insert into {self.table_id} failed: {e}") from e
        if errors:
            raise StorageWriteError(f"BigQuery rejected rows for {self.table_id}: {errors}")

    async def write(self, records: Sequence[dict[str, Any]]) -> bool:
        """Insert records; returns True when they were saved."""
        if not records:
            return True

        rows = prepare_rows(records, self.allowed_fields)
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.attempts),
                wait=wait_exponential(multiplier=self.backoff, max=10),
                retry=retry_if_exception_type(StorageWriteError),
                reraise=True,
            ):
                with attempt:
                    await asyncio.to_thread(self._insert, rows)
        except (StorageWriteError, RetryError) as e:
            logger.error(f"BigQuery fail: {e}")
            return False

        logger.info(f"Data saved: {len(rows)} row(s) into {self.table_id}")
        return True


@contextmanager
def open_result_writer(config: Config) -> Iterator[ResultWriter | None]:
    """
    Open a writer for the configured table and close its client on exit.

    Yields None when no table is configured or no credentials are available,
    so callers can skip storage without failing.
    """
    if not config.storage_configured:
        yield None
        return

    try:
        client = bigquery.Client(project=config.project_id or None)
    except DefaultCredentialsError as e:
        logger.warning(f"BigQuery credentials unavailable, results will not be stored: {e}")
        yield None
        return

    try:
        yield ResultWriter(
            client,
            config.bq_dataset,
            config.bq_table,
            mapping=config.field_mapping,
            attempts=config.storage_write_attempts,
        )
    finally:
        client.close()
