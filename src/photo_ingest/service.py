"""Wiring: build the pipeline, processor and scheduler from configuration."""

import logging
from dataclasses import dataclass
from typing import Optional

from .events import EventBus
from .models import IngestConfig
from .pipeline.derivation import MediaPipeline
from .pipeline.processor import JobProcessor
from .queue.scheduler import Scheduler
from .resources import (
    ConcurrencyLimits,
    HostInfo,
    MemoryGate,
    apply_host_limits,
    compute_concurrency,
    log_host_profile,
    probe_host,
)
from .storage.backends import BlobStore, CatalogStore
from .storage.blob import create_blob_store

logger = logging.getLogger(__name__)


@dataclass
class IngestService:
    """Everything a submission handler needs, built once at startup."""

    config: IngestConfig
    limits: ConcurrencyLimits
    events: EventBus
    pipeline: MediaPipeline
    processor: JobProcessor
    scheduler: Scheduler

    async def start(self) -> None:
        await self.scheduler.start()

    async def stop(self, grace_period_s: Optional[float] = None) -> None:
        if grace_period_s is None:
            grace_period_s = self.config.queue.shutdown_grace_s
        await self.scheduler.stop(grace_period_s)
        self.pipeline.close()


def build_service(
    config: IngestConfig,
    catalog: CatalogStore,
    blob_store: Optional[BlobStore] = None,
    host: Optional[HostInfo] = None,
    memory_gate: Optional[MemoryGate] = None,
) -> IngestService:
    """Build the ingestion service.

    Args:
        config: Resolved configuration; unset concurrency fields are derived
        catalog: Catalog store
        blob_store: Overrides the backend selected in ``config.storage``
        host: Host profile (probed when omitted)
        memory_gate: Overrides the gate derived from the host profile
    """
    host = host or probe_host()
    limits = compute_concurrency(host, config.concurrency.memory_headroom_fraction)
    log_host_profile(host, limits)
    config = apply_host_limits(config, limits)

    if blob_store is None:
        blob_store = create_blob_store(config.storage)
    if not blob_store.is_configured():
        logger.warning("No blob storage configured: images will be stored as base64 data URIs")

    if memory_gate is None:
        memory_gate = MemoryGate(
            ceiling_bytes=limits.memory_ceiling_bytes,
            backoff_s=config.concurrency.memory_backoff_s,
            max_waits=config.concurrency.memory_backoff_max_waits,
        )

    events = EventBus()
    pipeline = MediaPipeline(config, blob_store, catalog)
    processor = JobProcessor(
        pipeline,
        catalog,
        file_concurrency=config.concurrency.file_concurrency,
        memory_gate=memory_gate,
        events=events,
        fail_when_all_files_fail=config.queue.fail_when_all_files_fail,
    )
    scheduler = Scheduler(
        processor,
        job_concurrency=config.concurrency.job_concurrency,
        max_attempts=config.queue.max_attempts,
        max_queue_depth=config.queue.max_queue_depth,
        retry_policy=config.queue.retry_policy,
        nudge_interval_s=config.queue.nudge_interval_s,
        keep_finished=config.queue.keep_finished,
        events=events,
    )
    return IngestService(
        config=config,
        limits=limits,
        events=events,
        pipeline=pipeline,
        processor=processor,
        scheduler=scheduler,
    )
