"""Command-line batch ingestion on top of the scheduler.

Usage:
    # Ingest a folder of images into one album and wait for it
    job = batch.run_ingest({"input": "photos/", "owner": "u1", "album": "Summer"})

    # Same thing from async code, with injected stores
    job = await batch.ingest_paths(config, paths, owner_id="u1", parent_name="Summer",
                                   catalog=catalog, blob_store=store)
"""

import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from databases import Database
from tqdm import tqdm

from . import scanner
from .config import resolve_config
from .events import JobProgress, JobRetrying
from .logs import setup_logging
from .models import IngestConfig
from .queue.models import JobDescriptor, JobPayload
from .resources import HostInfo
from .service import build_service
from .storage import BlobStore, CatalogStore, SQLCatalogStore, init_db

logger = logging.getLogger(__name__)


async def ingest_paths(
    config: IngestConfig,
    paths: List[Path],
    owner_id: str,
    parent_name: str,
    batch_label: str = "",
    session_id: str = "",
    priority: int = 0,
    catalog: Optional[CatalogStore] = None,
    blob_store: Optional[BlobStore] = None,
    host: Optional[HostInfo] = None,
    show_progress: bool = True,
) -> JobDescriptor:
    """Submit ``paths`` as one job and wait until it is finished.

    Opens (and closes) the configured catalog database unless a catalog
    store is injected.
    """
    database = None
    if catalog is None:
        init_db(config.database.url)
        database = Database(config.database.url)
        await database.connect()
        catalog = SQLCatalogStore(database)

    service = build_service(config, catalog, blob_store=blob_store, host=host)
    bar = tqdm(total=len(paths), desc="Ingesting images", unit="image", disable=not show_progress)

    def on_progress(event: JobProgress) -> None:
        bar.n = event.processed
        bar.set_postfix(ok=event.succeeded, failed=event.failed)
        bar.refresh()

    def on_retry(event: JobRetrying) -> None:
        bar.write(f"Attempt {event.attempt} failed, retrying: {event.error}")
        bar.n = 0
        bar.refresh()

    service.events.subscribe(JobProgress, on_progress)
    service.events.subscribe(JobRetrying, on_retry)
    try:
        await service.start()
        payload = JobPayload(
            owner_id=owner_id,
            batch_label=batch_label,
            parent_name=parent_name,
            session_id=session_id,
            files=[scanner.load_file_item(p) for p in paths],
        )
        job = service.scheduler.submit(payload, priority=priority)
        return await service.scheduler.wait(job.id)
    finally:
        bar.close()
        await service.stop()
        if database is not None:
            await database.disconnect()


def run_ingest(cli_args: Dict[str, Any]) -> Optional[JobDescriptor]:
    """CLI entry: resolve config, scan the input and ingest it as one job."""
    config = resolve_config(cli_args)
    setup_logging(config.logging.level, config.logging.file)

    exts = cli_args["ext"].split(",") if cli_args.get("ext") else None
    paths = scanner.scan_input(
        cli_args["input"],
        recursive=cli_args.get("recursive", False),
        limit=cli_args.get("limit"),
        extensions=exts,
    )
    if not paths:
        logger.warning(f"No images found in {cli_args['input']}")
        return None

    logger.info(f"Found {len(paths)} images in {cli_args['input']}")
    return asyncio.run(
        ingest_paths(
            config,
            paths,
            owner_id=cli_args["owner"],
            parent_name=cli_args.get("album") or Path(cli_args["input"]).name,
            batch_label=cli_args.get("label", ""),
            session_id=cli_args.get("session", ""),
            priority=cli_args.get("priority", 0),
        )
    )
