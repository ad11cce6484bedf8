"""
Reconciliation loop.

Drives fetch → build → compare → apply:
  - prime(): one synchronous cycle at startup; a cluster query failure
    here is fatal and propagates to the caller
  - tick():  one periodic cycle; failures are logged and the tick is
    skipped, the last applied set is kept
  - run():   prime, then tick every sync period, forever

Cycles never overlap. When a cycle takes longer than the period the next
one starts right away; missed ticks are not replayed.

The "last applied" set only advances when the output file was written, so
a failed render or write is retried on the next tick even if the cluster
did not change in between.
"""

import enum
import logging
import time
from typing import Callable, List, Optional

from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .applier import ConfigApplier
from .candidate_builder import CandidateBuilder
from .config import Config
from .errors import QueryError, RenderError, WriteError
from .kube_client import ClusterClient
from .records import ExposureRecord, changed

logger = logging.getLogger("kube_lb_sync")


class TickOutcome(enum.Enum):
    UNCHANGED = "unchanged"
    APPLIED = "applied"
    APPLY_FAILED = "apply_failed"
    FETCH_FAILED = "fetch_failed"
    CYCLE_FAILED = "cycle_failed"


class Reconciler:
    """Owns the last applied exposure set and the reconciliation schedule."""

    def __init__(
        self,
        config: Config,
        client: ClusterClient,
        builder: CandidateBuilder,
        applier: ConfigApplier,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._config = config
        self._client = client
        self._builder = builder
        self._applier = applier
        self._clock = clock
        self._sleep = sleep
        self.applied: Optional[List[ExposureRecord]] = None

    # ── Cycle steps ───────────────────────────────────────────

    def _fetch_and_build(self) -> List[ExposureRecord]:
        raw = self._client.list_exposable_services()
        return self._builder.build(raw)

    def _fetch_with_retry(self) -> List[ExposureRecord]:
        if self._config.fetch_retries <= 0:
            return self._fetch_and_build()

        retrying = Retrying(
            stop=stop_after_attempt(self._config.fetch_retries + 1),
            wait=wait_exponential(
                multiplier=self._config.fetch_backoff,
                max=self._config.sync_period,
            ),
            retry=retry_if_exception_type(QueryError),
            sleep=self._sleep,
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        return retrying(self._fetch_and_build)

    def _apply(self, records: List[ExposureRecord]) -> TickOutcome:
        try:
            result = self._applier.apply(records)
        except (RenderError, WriteError) as e:
            logger.error(f"❌ apply aborted, previous config kept: {e}")
            return TickOutcome.APPLY_FAILED

        # The file is written; a failed reload does not roll that back
        self.applied = records
        if not result.ok:
            logger.warning("⚠️ config written but proxy reload failed")
        return TickOutcome.APPLIED

    # ── Public API ────────────────────────────────────────────

    def prime(self) -> TickOutcome:
        """First synchronous cycle. QueryError propagates."""
        logger.info("🔍 Initial GetServices fired")
        records = self._fetch_and_build()
        return self._apply(records)

    def tick(self) -> TickOutcome:
        """One periodic cycle. Never raises; failures are logged and skipped."""
        logger.info("GetServices fired")
        try:
            return self._tick()
        except Exception as e:
            logger.warning(f"⚠️ resync failed, skipping this cycle: {type(e).__name__}: {e}")
            return TickOutcome.CYCLE_FAILED

    def _tick(self) -> TickOutcome:
        try:
            records = self._fetch_with_retry()
        except QueryError as e:
            logger.warning(f"⚠️ fetch failed, skipping this cycle: {e}")
            return TickOutcome.FETCH_FAILED

        if not changed(self.applied, records, self._config.change_detection):
            logger.info(f"no change detected ({len(records)} services)")
            return TickOutcome.UNCHANGED

        logger.info("🔄 Services have changed, reload fired")
        return self._apply(records)

    def run(self, max_ticks: Optional[int] = None) -> None:
        """Prime, then tick every sync period. Runs forever unless max_ticks is set."""
        self.prime()

        period = self._config.sync_period
        logger.info(f"👂 Running (sync every {period}s)...")

        deadline = self._clock() + period
        done = 0
        while max_ticks is None or done < max_ticks:
            delay = deadline - self._clock()
            if delay > 0:
                self._sleep(delay)
            self.tick()
            done += 1

            deadline += period
            now = self._clock()
            if deadline <= now:
                # overran: start the next cycle now, drop missed ticks
                deadline = now
