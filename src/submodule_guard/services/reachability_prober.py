"""
Concurrent reachability probing of submodule remotes.

Probes run on a bounded ThreadPoolExecutor. Each worker sends exactly one
ProbeResult over a queue to the calling thread, which is the only writer of
the result map. When the batch timeout expires the shared cancel event is
set: queued probes never start, running probes have their git process
killed by the backend, and every unfinished record is reported as Unknown.

Operational failures (network, auth, timeout, unexpected errors) are turned
into Unknown here and never into a "not reachable" answer.
"""

import logging
import queue
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Dict, List, Optional, Protocol

from ..errors import ProbeError
from ..models import ProbeResult, Reachability, ReachabilityAnswer, SubmoduleRecord
from ..utils.exception_logger import ExceptionLogger

logger = logging.getLogger(__name__)

BATCH_TIMEOUT_ERROR = "batch timeout exceeded before the probe completed"
CANCELLED_ERROR = "probe cancelled before it started"


class ReachabilityBackend(Protocol):
    """Capability supplied by the version-control environment."""

    def is_revision_reachable(
        self,
        remote_location: str,
        revision: str,
        timeout: float,
        branch_hint: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> ReachabilityAnswer:
        ...



class ReachabilityProber:
    """Probes every submodule remote with bounded parallelism."""

    def __init__(
        self,
        backend: ReachabilityBackend,
        concurrency: int = 8,
        probe_timeout: float = 30.0,
        batch_timeout: Optional[float] = 120.0,
    ):
        """
        Args:
            backend: Reachability capability used for each probe
            concurrency: Maximum number of probes running at once
            probe_timeout: Seconds allowed for a single probe
            batch_timeout: Seconds allowed for the whole batch (None = unbounded)
        """
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.backend = backend
        self.concurrency = concurrency
        self.probe_timeout = probe_timeout
        self.batch_timeout = batch_timeout

    def probe(
        self, record: SubmoduleRecord, cancel_event: Optional[threading.Event] = None
    ) -> ProbeResult:
        """Probe a single record. Never raises for operational failures."""
        if cancel_event is not None and cancel_event.is_set():
            return ProbeResult.unknown(record.path, CANCELLED_ERROR)

        start = time.monotonic()
        try:
            answer = self.backend.is_revision_reachable(
                record.remote_location,
                record.pinned_revision,
                self.probe_timeout,
                record.branch_hint,
                cancel_event=cancel_event,
            )
        except ProbeError as e:
            elapsed = time.monotonic() - start
            logger.info(f"Probe of {record.path} failed: {type(e).__name__}: {e}")
            return ProbeResult.unknown(record.path, str(e) or type(e).__name__, elapsed)
        except Exception as e:
            elapsed = time.monotonic() - start
            logger.warning(f"Unexpected error probing {record.path}: {e}")
            exception_logger = ExceptionLogger.get_instance()
            if exception_logger:
                exception_logger.log_exception(
                    e,
                    context={
                        "path": record.path,
                        "remote_location": record.remote_location,
                    },
                )
            return ProbeResult.unknown(
                record.path, f"unexpected error: {type(e).__name__}: {e}", elapsed
            )

        elapsed = time.monotonic() - start
        return ProbeResult(
            path=record.path,
            reachable=Reachability.YES if answer.reachable else Reachability.NO,
            elapsed=elapsed,
            branch_tips=answer.branch_tips,
        )

    def probe_all(self, records: List[SubmoduleRecord]) -> List[ProbeResult]:
        """
        Probe all records concurrently.

        Returns:
            One ProbeResult per record, in path order
        """
        if not records:
            return []

        channel: "queue.Queue[ProbeResult]" = queue.Queue()
        cancel_event = threading.Event()
        results: Dict[str, ProbeResult] = {}
        workers = min(len(records), self.concurrency)
        deadline = (
            time.monotonic() + self.batch_timeout
            if self.batch_timeout is not None
            else None
        )

        def worker(record: SubmoduleRecord) -> None:
            channel.put(self.probe(record, cancel_event))

        executor = ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix="SubmoduleProbe"
        )
        futures: List[Future] = []
        try:
            for record in records:
                futures.append(executor.submit(worker, record))

            while len(results) < len(records):
                if deadline is None:
                    result = channel.get()
                else:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        break
                    try:
                        result = channel.get(timeout=remaining)
                    except queue.Empty:
                        break
                results.setdefault(result.path, result)
        finally:
            if len(results) < len(records):
                cancel_event.set()
                for future in futures:
                    future.cancel()
            executor.shutdown(wait=len(results) >= len(records), cancel_futures=True)

        missing = [r.path for r in records if r.path not in results]
        if missing:
            logger.warning(
                f"Batch timeout of {self.batch_timeout:g}s reached; "
                f"{len(missing)} probe(s) reported as unknown: {', '.join(missing)}"
            )
            for path in missing:
                results[path] = ProbeResult.unknown(path, BATCH_TIMEOUT_ERROR)

        return [results[path] for path in sorted(results)]
