"""Batch audit orchestration: sequential single-URL audits with all-or-nothing results."""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from app.core.formatter import DEFAULT_FIELD_MAPPING, FieldMapping, format_results
from app.core.runner import AuditRunner
from app.errors.exceptions import BackendAuditError, BatchAuditError
from app.schemas.common import AuditBackend, AuditMode

logger = logging.getLogger(__name__)


@dataclass
class BatchOutcome:
    """
    Result of folding a batch of audits.

    Either every URL succeeded (results and scores line up with the input) or
    the fold stopped at failed_url and nothing else is kept.
    """

    results: list[dict[str, Any]] = field(default_factory=list)
    scores: list[float | None] = field(default_factory=list)
    failed_url: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.failed_url is None

    def unwrap(self) -> list[dict[str, Any]]:
        """Return the raw results, or raise the batch failure."""
        if not self.ok:
            assert self.failed_url is not None and self.error is not None
            raise BatchAuditError(self.failed_url, self.error)
        return self.results


class BatchAudit:
    """
    Audits an ordered list of URLs one after another for a single mode.

    URLs are never audited concurrently; one browser-driven audit at a time
    keeps memory and CPU use predictable.
    """

    def __init__(
        self,
        runner: AuditRunner,
        urls: Sequence[str],
        blocked_patterns: Sequence[str] = (),
        mode: AuditMode = AuditMode.MOBILE,
        field_mapping: FieldMapping = DEFAULT_FIELD_MAPPING,
    ):
        if mode == AuditMode.ALL:
            raise ValueError("BatchAudit runs a single mode; expand 'all' with run_batch_audit()")
        self.runner = runner
        self.urls = list(urls)
        self.blocked_patterns = list(blocked_patterns)
        self.mode = mode
        self.field_mapping = field_mapping
        self.audit_results: list[dict[str, Any]] = []
        self.performance_scores: list[float | None] = []

    async def collect(self) -> BatchOutcome:
        """Audit every URL in order, stopping at the first failure."""
        self.audit_results = []
        self.performance_scores = []
        outcome = BatchOutcome()

        async with self.runner.session():
            for url in self.urls:
                started = time.time()
                try:
                    result = await self.runner.audit(url, self.mode, self.blocked_patterns)
                except BackendAuditError as e:
                    logger.warning(f"{self.mode.value} audit failed for {url}: {e.message}")
                    return BatchOutcome(failed_url=url, error=e.message)

                outcome.results.append(result.metrics)
                outcome.scores.append(result.performance)
                logger.info(
                    f"Audited {url} ({self.mode.value}) in {time.time() - started:.1f}s, "
                    f"performance={result.performance}"
                )

        self.audit_results = outcome.results
        self.performance_scores = outcome.scores
        return outcome

    async def run(self) -> list[dict[str, Any]]:
        """
        Audit every URL and return the raw results.

        Raises:
            BatchAuditError: If any URL fails; earlier results are discarded.
        """
        outcome = await self.collect()
        return outcome.unwrap()

    def formatted_results(self) -> list[dict[str, Any]]:
        """Accumulated results flattened into records tagged with this batch's mode."""
        # PSI cannot block requests, so its records carry no blockedRequests column
        blocked = (
            self.blocked_patterns if self.runner.backend == AuditBackend.LIGHTHOUSE else None
        )
        return format_results(
            self.audit_results,
            self.performance_scores,
            self.field_mapping,
            mode=self.mode.value,
            blocked_patterns=blocked,
        )


async def run_batch_audit(
    runner: AuditRunner,
    urls: Sequence[str],
    blocked_patterns: Sequence[str] = (),
    mode: AuditMode = AuditMode.MOBILE,
    field_mapping: FieldMapping = DEFAULT_FIELD_MAPPING,
) -> list[dict[str, Any]]:
    """
    Run a batch audit and return formatted records.

    Mode "all" runs a desktop pass and then a mobile pass over the same URLs
    and concatenates their records. Any failure aborts the whole request.

    Raises:
        BatchAuditError: If any URL in any pass fails.
    """
    logger.info(f"Starting {mode.value} audit of {len(urls)} URL(s) with {runner.backend.value}")
    records: list[dict[str, Any]] = []
    for concrete_mode in mode.concrete_modes():
        batch = BatchAudit(runner, urls, blocked_patterns, concrete_mode, field_mapping)
        await batch.run()
        records.extend(batch.formatted_results())

    logger.info(f"Finished {mode.value} audit of {len(urls)} URL(s): {len(records)} record(s)")
    return records
