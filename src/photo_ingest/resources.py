"""Host resource probe and advisory memory admission.

The probe reads CPU count and memory once at startup. Limits are derived by
the pure function ``compute_concurrency`` so tests can feed synthetic host
profiles instead of the real machine.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional

import psutil

from .models import IngestConfig

logger = logging.getLogger(__name__)

GB = 1024 ** 3


@dataclass(frozen=True)
class HostInfo:
    """Snapshot of host capacity."""

    cpu_count: int
    total_memory_bytes: int
    free_memory_bytes: int


@dataclass(frozen=True)
class ConcurrencyLimits:
    """Limits derived from a host profile."""

    job_concurrency: int
    file_concurrency: int
    encode_workers: int
    memory_ceiling_bytes: int


def _clamp(value: int, low: int, high: int) -> int:
    return min(max(value, low), high)


def probe_host() -> HostInfo:
    """Read CPU and memory figures for this machine."""
    vm = psutil.virtual_memory()
    return HostInfo(
        cpu_count=psutil.cpu_count(logical=True) or 1,
        total_memory_bytes=int(vm.total),
        free_memory_bytes=int(vm.available),
    )


def compute_concurrency(host: HostInfo, headroom_fraction: float = 0.7) -> ConcurrencyLimits:
    """Derive concurrency ceilings from a host profile.

    - jobs:    cpu/2 clamped to [2, 4]
    - files:   cpu*0.75 clamped to [3, 8]
    - encoder: cpu/2 clamped to [2, 6]
    - memory:  headroom_fraction of free memory
    """
    cpu = max(host.cpu_count, 1)
    return ConcurrencyLimits(
        job_concurrency=_clamp(cpu // 2, 2, 4),
        file_concurrency=_clamp(int(cpu * 0.75), 3, 8),
        encode_workers=_clamp(cpu // 2, 2, 6),
        memory_ceiling_bytes=int(host.free_memory_bytes * headroom_fraction),
    )


def apply_host_limits(config: IngestConfig, limits: ConcurrencyLimits) -> IngestConfig:
    """Fill concurrency fields left unset in config from derived limits.

    Explicitly configured values win.
    """
    config_dict = config.model_dump()
    section = config_dict["concurrency"]
    if section["job_concurrency"] is None:
        section["job_concurrency"] = limits.job_concurrency
    if section["file_concurrency"] is None:
        section["file_concurrency"] = limits.file_concurrency
    if section["encode_workers"] is None:
        section["encode_workers"] = limits.encode_workers
    return IngestConfig.from_dict(config_dict)


def log_host_profile(host: HostInfo, limits: ConcurrencyLimits) -> None:
    logger.info(
        f"Host: {host.cpu_count} CPUs, {host.total_memory_bytes / GB:.1f}GB total, "
        f"{host.free_memory_bytes / GB:.1f}GB free"
    )
    logger.info(
        f"Limits: jobs={limits.job_concurrency} files={limits.file_concurrency} "
        f"encoders={limits.encode_workers} memory_ceiling={limits.memory_ceiling_bytes / GB:.1f}GB"
    )


def process_memory_bytes() -> int:
    """Resident set size of this process."""
    return int(psutil.Process().memory_info().rss)


class MemoryGate:
    """Advisory memory admission check.

    Before a batch of files starts, callers await ``wait_for_headroom``. While
    the process uses more than the ceiling, it sleeps in short steps. After
    ``max_waits`` sleeps it proceeds anyway (the check is advisory, not a
    quota) and logs a warning.
    """

    def __init__(
        self,
        ceiling_bytes: int,
        backoff_s: float = 0.5,
        max_waits: int = 20,
        usage_fn: Optional[Callable[[], int]] = None,
    ):
        self.ceiling_bytes = ceiling_bytes
        self.backoff_s = backoff_s
        self.max_waits = max_waits
        self._usage_fn = usage_fn or process_memory_bytes
        self.stalls = 0

    def has_headroom(self, estimated_bytes: int = 0) -> bool:
        return self._usage_fn() + estimated_bytes < self.ceiling_bytes

    async def wait_for_headroom(self, estimated_bytes: int = 0) -> bool:
        """Sleep while memory is near the ceiling.

        Returns:
            True if headroom was available, False if we gave up waiting
        """
        waits = 0
        while not self.has_headroom(estimated_bytes):
            if waits >= self.max_waits:
                logger.warning(
                    f"Memory still above ceiling after {waits} waits; proceeding "
                    f"(ceiling={self.ceiling_bytes} bytes)"
                )
                return False
            waits += 1
            self.stalls += 1
            logger.debug(f"Memory near ceiling, backing off {self.backoff_s}s")
            await asyncio.sleep(self.backoff_s)
        return True
