"""Client-side buffer that batches scraped listings and delivers them with retry."""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Union

from jobmatch.domain.opportunity import OpportunitySource, RawOpportunityRecord, utcnow
from jobmatch.error_handling import DeliveryError, UnauthorizedError
from jobmatch.ingest.retry import RetryPolicy
from jobmatch.ingest.schemas import MAX_BATCH_ITEMS

logger = logging.getLogger(__name__)


class FlushTrigger(Enum):
    """What asked for a flush."""
    DEBOUNCE = "debounce"
    INTERVAL = "interval"
    MANUAL = "manual"


@dataclass
class QueueConfig:
    """Timing and batching knobs of the ingest queue."""
    debounce_seconds: float = 1.0
    flush_interval: float = 30.0  # seconds
    chunk_size: int = 50

    def __post_init__(self):
        if not 1 <= self.chunk_size <= MAX_BATCH_ITEMS:
            raise ValueError(f"chunk_size must be between 1 and {MAX_BATCH_ITEMS}, got {self.chunk_size}")

    @classmethod
    def from_config(cls, queue_config: dict) -> 'QueueConfig':
        return cls(
            debounce_seconds=queue_config.get('debounce_seconds', 1.0),
            flush_interval=queue_config.get('flush_interval', 30.0),
            chunk_size=queue_config.get('chunk_size', 50),
        )


@dataclass
class QueueStats:
    """Delivery counters, all in items."""
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    last_sync_at: Optional[datetime] = None
    last_error: Optional[str] = None


@dataclass
class Batch:
    """One request body worth of records from a single source."""
    source: OpportunitySource
    page_url: str
    collected_at: datetime
    records: List[RawOpportunityRecord] = field(default_factory=list)

    def to_payload(self) -> Dict[str, Any]:
        return {
            'source': self.source.value,
            'page_url': self.page_url,
            'collected_at': self.collected_at.isoformat(),
            'opportunities': [record.to_payload_item() for record in self.records],
        }


def dedupe_records(records: Iterable[RawOpportunityRecord]) -> List[RawOpportunityRecord]:
    """Drop same source+url duplicates; the last-seen record wins its slot."""
    unique: Dict[str, RawOpportunityRecord] = {}
    for record in records:
        unique[record.queue_key] = record
    return list(unique.values())


def group_by_source(records: Iterable[RawOpportunityRecord]) -> List[Batch]:
    """Group records by source.

    Each group takes page_url and collected_at from its most recently
    collected record.
    """
    groups: Dict[OpportunitySource, Batch] = {}
    for record in records:
        batch = groups.get(record.source)
        if batch is None:
            batch = Batch(record.source, record.page_url, record.collected_at)
            groups[record.source] = batch
        elif record.collected_at >= batch.collected_at:
            batch.page_url = record.page_url
            batch.collected_at = record.collected_at
        batch.records.append(record)
    return list(groups.values())


def chunk_batch(batch: Batch, chunk_size: int) -> List[Batch]:
    """Split a batch into batches of at most chunk_size records."""
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    return [
        Batch(batch.source, batch.page_url, batch.collected_at,
              batch.records[start:start + chunk_size])
        for start in range(0, len(batch.records), chunk_size)
    ]


def build_batches(records: Iterable[RawOpportunityRecord], chunk_size: int = 50) -> List[Batch]:
    """Dedupe, group and chunk buffered records into deliverable batches."""
    batches: List[Batch] = []
    for group in group_by_source(dedupe_records(records)):
        batches.extend(chunk_batch(group, chunk_size))
    return batches


class IngestQueue:
    """Buffers raw records and delivers them to the ingest endpoint.

    Flushes are requested by a debounce timer re-armed on every enqueue,
    by a periodic ticker, or manually. Requests travel through an
    asyncio.Queue consumed by a single worker, and the flush itself holds
    a lock: a flush requested while another one runs does nothing.
    Delivered or abandoned records are never requeued.
    """

    def __init__(self, client, config: Optional[QueueConfig] = None,
                 retry_policy: Optional[RetryPolicy] = None,
                 sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep):
        """Initialize the queue.

        Args:
            client: Object with a blocking send_batch(payload) -> dict
            config: Timing and batching configuration
            retry_policy: Retry schedule for failed batches
            sleep: Coroutine used for backoff waits
        """
        self.client = client
        self.config = config or QueueConfig()
        self.retry_policy = retry_policy or RetryPolicy()
        self.stats = QueueStats()
        self._sleep = sleep
        self._buffer: List[RawOpportunityRecord] = []
        self._lock = asyncio.Lock()
        self._triggers: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None
        self._ticker: Optional[asyncio.Task] = None
        self._debounce: Optional[asyncio.TimerHandle] = None

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    @property
    def flushing(self) -> bool:
        return self._lock.locked()

    def __len__(self) -> int:
        return len(self._buffer)

    def enqueue(self, source: Union[OpportunitySource, str], page_url: str,
                collected_at: datetime,
                opportunities: Iterable[Union[Dict[str, Any], RawOpportunityRecord]]) -> int:
        """Buffer scraped listings from one page.

        Args:
            source: Site the page belongs to
            page_url: URL of the scraped page
            collected_at: When the page was scraped
            opportunities: Listing dicts (or records) from the page

        Returns:
            Number of records accepted; invalid ones are skipped
        """
        accepted = 0
        for item in opportunities:
            if isinstance(item, RawOpportunityRecord):
                record = item
            else:
                try:
                    record = RawOpportunityRecord(
                        source=source,
                        page_url=page_url,
                        collected_at=collected_at,
                        **item,
                    )
                except (TypeError, ValueError) as e:
                    logger.warning(f"Skipping invalid record from {page_url}: {str(e)}")
                    continue
            self._buffer.append(record)
            accepted += 1

        logger.debug(f"Enqueued {accepted} records, {len(self._buffer)} buffered")
        if accepted:
            self._arm_debounce()
        return accepted

    def _arm_debounce(self) -> None:
        if not self.running:
            return
        if self._debounce is not None:
            self._debounce.cancel()
        loop = asyncio.get_running_loop()
        self._debounce = loop.call_later(
            self.config.debounce_seconds, self.request_flush, FlushTrigger.DEBOUNCE
        )

    def request_flush(self, trigger: FlushTrigger = FlushTrigger.MANUAL) -> None:
        """Ask the worker for a flush; ignored when the queue is not started."""
        if self._triggers is None:
            return
        self._triggers.put_nowait(trigger)

    async def flush(self) -> Optional[List[bool]]:
        """Deliver everything buffered.

        Returns:
            Per-batch delivery outcomes, or None if a flush was already running
        """
        if self._lock.locked():
            logger.debug("Flush already in progress, skipping")
            return None

        async with self._lock:
            records, self._buffer = self._buffer, []
            if not records:
                return []

            batches = build_batches(records, self.config.chunk_size)
            logger.info(f"Flushing {len(records)} records in {len(batches)} batches")
            outcomes = []
            for batch in batches:
                outcomes.append(await self._deliver(batch))
            return outcomes

    async def _deliver(self, batch: Batch) -> bool:
        """Send one batch, retrying transient failures.

        Returns:
            True if the batch was accepted by the server
        """
        count = len(batch.records)
        payload = batch.to_payload()
        self.stats.attempted += count

        for attempt in range(self.retry_policy.max_attempts):
            try:
                response = await asyncio.to_thread(self.client.send_batch, payload)
            except UnauthorizedError as e:
                logger.error(f"Dropping {count} {batch.source.value} records: {str(e)}")
                self.stats.failed += count
                self.stats.last_error = str(e)
                return False
            except DeliveryError as e:
                self.stats.last_error = str(e)
                if attempt >= self.retry_policy.max_retries:
                    logger.error(
                        f"Abandoning batch of {count} {batch.source.value} records "
                        f"after {attempt + 1} attempts: {str(e)}"
                    )
                    self.stats.failed += count
                    return False

                delay = self.retry_policy.delay_for(attempt)
                logger.warning(
                    f"Batch delivery failed (attempt {attempt + 1}), "
                    f"retrying in {delay:.0f}s: {str(e)}"
                )
                await self._sleep(delay)
                continue
            except Exception as e:
                logger.error(
                    f"Dropping {count} {batch.source.value} records after unexpected "
                    f"{type(e).__name__}: {str(e)}"
                )
                self.stats.failed += count
                self.stats.last_error = f"{type(e).__name__}: {str(e)}"
                return False

            self.stats.succeeded += response.get('inserted', 0) + response.get('updated', 0)
            self.stats.last_sync_at = utcnow()
            self.stats.last_error = None
            return True

        return False

    def status(self) -> Dict[str, Any]:
        """Snapshot of the queue for display; never blocks."""
        return {
            'queue_size': len(self._buffer),
            'attempted': self.stats.attempted,
            'succeeded': self.stats.succeeded,
            'failed': self.stats.failed,
            'last_sync_at': self.stats.last_sync_at.isoformat() if self.stats.last_sync_at else None,
            'last_error': self.stats.last_error,
            'flushing': self.flushing,
        }

    async def start(self) -> None:
        """Start the flush worker and the periodic ticker on the running loop."""
        if self.running:
            return
        self._triggers = asyncio.Queue()
        self._worker = asyncio.create_task(self._run_worker())
        self._ticker = asyncio.create_task(self._run_ticker())
        logger.info(
            f"Ingest queue started (debounce {self.config.debounce_seconds}s, "
            f"interval {self.config.flush_interval}s)"
        )
        if self._buffer:
            self._arm_debounce()

    async def stop(self, flush: bool = True) -> None:
        """Stop timers and the worker, letting an in-flight flush finish.

        Args:
            flush: Deliver whatever is still buffered before returning
        """
        if self._debounce is not None:
            self._debounce.cancel()
            self._debounce = None

        if self._ticker is not None:
            self._ticker.cancel()
            try:
                await self._ticker
            except asyncio.CancelledError:
                pass
            self._ticker = None

        if self._worker is not None:
            # None is the stop sentinel
            self._triggers.put_nowait(None)
            await self._worker
            self._worker = None
        self._triggers = None

        if flush:
            async with self._lock:
                pass
            await self.flush()
        logger.info("Ingest queue stopped")

    async def _run_worker(self) -> None:
        while True:
            trigger = await self._triggers.get()
            if trigger is None:
                return
            logger.debug(f"Flush requested ({trigger.value})")
            try:
                await self.flush()
            except Exception as e:
                logger.error(f"Unexpected error during {trigger.value} flush: {type(e).__name__}: {str(e)}")
                self.stats.last_error = str(e)
            if self._drain_triggers():
                return

    def _drain_triggers(self) -> bool:
        """Discard requests that arrived during a flush.

        Returns:
            True if the stop sentinel was among them
        """
        stopped = False
        while not self._triggers.empty():
            if self._triggers.get_nowait() is None:
                stopped = True
        return stopped

    async def _run_ticker(self) -> None:
        while True:
            await asyncio.sleep(self.config.flush_interval)
            self.request_flush(FlushTrigger.INTERVAL)
