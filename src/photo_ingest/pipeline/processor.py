"""Job processor: ingest one batch of files into a new album."""

import logging
from typing import Callable, Optional

from ..errors import (
    AllFilesFailed,
    CatalogWriteFailure,
    ErrorType,
    IngestError,
    JobCancelled,
    describe_error,
    error_type_of,
)
from ..events import EventBus, JobProgress
from ..queue.models import FileFailure, JobDescriptor, JobOutcome
from ..resources import MemoryGate
from ..storage.backends import CatalogStore
from .derivation import MediaPipeline

logger = logging.getLogger(__name__)


def _never() -> bool:
    return False


class JobProcessor:
    """Runs one job: parent album, then files in fixed-size batches.

    Per-file errors are recorded in the outcome and never abort the job.
    Only failures outside file scope (creating the album, systemic errors)
    propagate to the scheduler.

    Args:
        pipeline: Per-file media pipeline
        catalog: Catalog store used to create the parent album
        file_concurrency: Files processed at once (also the batch size)
        memory_gate: Optional advisory memory check before each batch
        events: Optional event bus for progress events
        fail_when_all_files_fail: Raise AllFilesFailed if no file succeeded
    """

    def __init__(
        self,
        pipeline: MediaPipeline,
        catalog: CatalogStore,
        file_concurrency: int,
        memory_gate: Optional[MemoryGate] = None,
        events: Optional[EventBus] = None,
        fail_when_all_files_fail: bool = False,
    ):
        if file_concurrency < 1:
            raise ValueError("file_concurrency must be >= 1")
        self.pipeline = pipeline
        self.catalog = catalog
        self.file_concurrency = file_concurrency
        self.memory_gate = memory_gate
        self.events = events
        self.fail_when_all_files_fail = fail_when_all_files_fail

    async def _create_parent(self, job: JobDescriptor) -> str:
        payload = job.payload
        try:
            return await self.catalog.create_parent(
                payload.owner_id, payload.parent_name, payload.batch_label
            )
        except IngestError:
            raise
        except Exception as e:
            raise CatalogWriteFailure(f"could not create album {payload.parent_name!r}: {describe_error(e)}") from e

    async def run(
        self, job: JobDescriptor, should_cancel: Callable[[], bool] = _never
    ) -> JobOutcome:
        """Process every file of ``job`` and return the aggregated outcome.

        ``should_cancel`` is checked between batches; files not yet started
        when it returns True are reported as cancelled.
        """
        payload = job.payload
        files = list(payload.files)
        total = len(files)

        parent_id = await self._create_parent(job)
        outcome = JobOutcome(parent_id=parent_id)
        logger.info(f"Job {job.id}: processing {total} files into album {parent_id}")

        for start in range(0, total, self.file_concurrency):
            if should_cancel():
                for item in files[start:]:
                    outcome.failed.append(
                        FileFailure(
                            filename=item.name,
                            error=str(JobCancelled("job cancelled before file was processed")),
                            error_type=ErrorType.PERMANENT,
                        )
                    )
                outcome.cancelled = True
                logger.info(f"Job {job.id}: cancelled with {total - start} files left")
                break

            batch = files[start:start + self.file_concurrency]
            if self.memory_gate is not None:
                await self.memory_gate.wait_for_headroom(sum(len(f.data) for f in batch))

            results = await self.pipeline.process_many(batch, payload.owner_id, parent_id)
            for item, result in zip(batch, results):
                if isinstance(result, Exception):
                    logger.warning(f"Job {job.id}: {item.name!r} failed: {describe_error(result)}")
                    outcome.failed.append(
                        FileFailure(
                            filename=item.name,
                            error=describe_error(result),
                            error_type=error_type_of(result),
                        )
                    )
                elif isinstance(result, BaseException):
                    # Cancellation and interpreter exits are not per-file failures
                    raise result
                else:
                    outcome.succeeded.append(result)

            if self.events is not None:
                self.events.publish(
                    JobProgress(
                        job_id=job.id,
                        session_id=payload.session_id,
                        parent_name=payload.parent_name,
                        processed=min(start + len(batch), total),
                        total=total,
                        succeeded=len(outcome.succeeded),
                        failed=len(outcome.failed),
                    )
                )

        if total and not outcome.succeeded and not outcome.cancelled:
            logger.warning(f"Job {job.id}: none of {total} files succeeded")
            if self.fail_when_all_files_fail:
                error = AllFilesFailed(f"all {total} files failed")
                error.outcome = outcome
                raise error

        logger.info(
            f"Job {job.id}: {len(outcome.succeeded)} succeeded, {len(outcome.failed)} failed"
        )
        return outcome
