"""
Shared consistency check used by every enforcement point.

Runs manifest reading, probing, classification and report building. The
result depends only on the manifest and the state of the remotes; callers
decide what to do with the verdict.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from ..config import ProbeConfig
from ..models import ConsistencyReport
from .manifest_reader import ManifestReader, ManifestSource
from .reachability_prober import ReachabilityBackend, ReachabilityProber
from .report_builder import build_report
from .status_classifier import classify

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def check_submodules(
    source: ManifestSource,
    backend: ReachabilityBackend,
    probe_config: Optional[ProbeConfig] = None,
    clock: Clock = _utc_now,
) -> ConsistencyReport:
    """
    Check that every pinned submodule revision is reachable on its remote.

    Args:
        source: Supplies the superproject manifest state
        backend: Answers reachability queries against remotes
        probe_config: Timeouts and concurrency for the probes
        clock: Source of the report timestamp

    Returns:
        ConsistencyReport with one record per submodule

    Raises:
        ConfigurationError: If the manifest cannot be read or validated
    """
    probe_config = probe_config or ProbeConfig()
    records = ManifestReader(source).read()
    logger.debug(f"Manifest lists {len(records)} submodule(s)")

    prober = ReachabilityProber(
        backend,
        concurrency=probe_config.concurrency,
        probe_timeout=probe_config.timeout,
        batch_timeout=probe_config.batch_timeout,
    )
    probes = {result.path: result for result in prober.probe_all(records)}
    classified = [classify(record, probes[record.path]) for record in records]
    report = build_report(classified, generated_at=clock())
    logger.info(
        f"Submodule check finished: {report.overall_status.value} "
        f"({len(report.records)} record(s))"
    )
    return report
