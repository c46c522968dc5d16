"""Tests for BigQuery persistence."""

from unittest.mock import MagicMock

import pytest
from google.api_core.exceptions import BadRequest
from google.auth.exceptions import DefaultCredentialsError

from app.config.settings import load_config
from app.core.formatter import DEFAULT_FIELD_MAPPING, result_columns
from app.services import storage
from app.services.storage import (
    PARTITION_EXPIRATION_MS,
    ResultWriter,
    create_date_partition_table,
    open_result_writer,
    prepare_rows,
    result_schema,
)


def _client(insert_errors=None, side_effect=None) -> MagicMock:
    client = MagicMock()
    client.project = "demo"
    client.insert_rows_json.return_value = insert_errors or []
    if side_effect is not None:
        client.insert_rows_json.side_effect = side_effect
    return client


def _record(**extra):
    record = {name: 0 for name in result_columns(DEFAULT_FIELD_MAPPING)}
    record.update(url="https://a.com", date="2024-03-05", mode="mobile")
    record.update(extra)
    return record


class TestSchema:
    """Test the table schema and column allow-list."""

    def test_schema_matches_formatter_columns(self):
        names = [f.name for f in result_schema()]
        assert names == result_columns(DEFAULT_FIELD_MAPPING)

    def test_prepare_rows_drops_unlisted_fields(self):
        rows = prepare_rows([{"url": "https://a.com", "debug": "x"}], ["url", "mode"])
        assert rows == [{"url": "https://a.com", "mode": None}]

    def test_create_table_is_day_partitioned(self):
        client = _client()
        client.create_table.side_effect = lambda table, exists_ok: table

        table = create_date_partition_table(client, "perf", "results", location="EU")

        dataset = client.create_dataset.call_args.args[0]
        assert dataset.location == "EU"
        assert table.time_partitioning.field == "date"
        assert table.time_partitioning.expiration_ms == PARTITION_EXPIRATION_MS
        assert table.table_id == "results"


class TestResultWriter:
    """Test best-effort writes."""

    @pytest.mark.asyncio
    async def test_write_inserts_allowed_columns(self):
        client = _client()
        writer = ResultWriter(client, "perf", "results", backoff=0)

        saved = await writer.write([_record(extra_field="dropped")])

        assert saved is True
        table_id, rows = client.insert_rows_json.call_args.args
        assert table_id == "demo.perf.results"
        assert "extra_field" not in rows[0]
        assert rows[0]["url"] == "https://a.com"

    @pytest.mark.asyncio
    async def test_empty_write_skips_insert(self):
        client = _client()
        assert await ResultWriter(client, "perf", "results").write([]) is True
        client.insert_rows_json.assert_not_called()

    @pytest.mark.asyncio
    async def test_rejected_rows_are_retried_then_logged(self, caplog):
        client = _client(insert_errors=[{"index": 0, "errors": ["invalid"]}])
        writer = ResultWriter(client, "perf", "results", attempts=3, backoff=0)

        saved = await writer.write([_record()])

        assert saved is False
        assert client.insert_rows_json.call_count == 3
        assert "BigQuery fail" in caplog.text

    @pytest.mark.asyncio
    async def test_api_error_does_not_raise(self):
        client = _client(side_effect=BadRequest("no such table"))
        writer = ResultWriter(client, "perf", "results", attempts=2, backoff=0)

        assert await writer.write([_record()]) is False
        assert client.insert_rows_json.call_count == 2

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failure(self):
        client = _client(side_effect=[BadRequest("flaky"), []])
        writer = ResultWriter(client, "perf", "results", attempts=3, backoff=0)

        assert await writer.write([_record()]) is True
        assert client.insert_rows_json.call_count == 2


class TestOpenResultWriter:
    """Test the on-demand writer and its client lifecycle."""

    @pytest.fixture
    def storage_env(self, monkeypatch):
        monkeypatch.setenv("GOOGLE_CLOUD_PROJECT", "demo")
        monkeypatch.setenv("BQ_DATASET", "perf")
        monkeypatch.setenv("BQ_TABLE", "results")

    def test_unconfigured_builds_no_client(self, monkeypatch):
        factory = MagicMock()
        monkeypatch.setattr(storage.bigquery, "Client", factory)

        with open_result_writer(load_config()) as writer:
            assert writer is None
        factory.assert_not_called()

    def test_client_closed_on_exit(self, monkeypatch, storage_env):
        client = _client()
        monkeypatch.setattr(storage.bigquery, "Client", lambda project: client)

        with open_result_writer(load_config()) as writer:
            assert writer.table_id == "demo.perf.results"
            client.close.assert_not_called()
        client.close.assert_called_once_with()

    def test_missing_credentials(self, monkeypatch, storage_env, caplog):
        def no_credentials(project):
            raise DefaultCredentialsError("no ADC")

        monkeypatch.setattr(storage.bigquery, "Client", no_credentials)

        with open_result_writer(load_config()) as writer:
            assert writer is None
        assert "credentials unavailable" in caplog.text
