"""
Ingestion worker entry point (`docrag-worker`).

    docrag-worker            run the consumer for the rag-processing queue
    docrag-worker migrate    apply SQL migrations and exit
    docrag-worker reconcile  fail documents stuck in processing and exit

Celery handles SIGTERM/SIGINT with a warm shutdown: the in-flight job finishes
before the process exits, and unacked jobs go back to the queue.
"""
import argparse
from datetime import timedelta
from typing import List, Optional

from . import logging_config
from .config import Settings
from .container import Components, build_components
from .db.migrations import run_sql_migrations
from .logging_config import logger
from .pipeline import IngestionPipeline
from .queue import INGESTION_QUEUE, IngestionConsumer, register_ingestion_task


def build_consumer(components: Components) -> IngestionConsumer:
    settings = components.settings
    pipeline = IngestionPipeline(
        storage=components.storage,
        chunker=components.chunker,
        embedder=components.embedder,
        vector_store=components.vector_store,
        tracker=components.tracker,
        batch_size=settings.ingest_batch_size,
    )
    return IngestionConsumer(pipeline, components.tracker, settings.retry)


def reconcile(components: Components) -> List[str]:
    minutes = components.settings.stale_processing_minutes
    return components.tracker.fail_stale_processing(timedelta(minutes=minutes))


def run_worker(components: Components) -> None:
    settings = components.settings
    stale = reconcile(components)
    logger.info("Startup reconciliation done", failed=len(stale))

    app = components.queue.app
    register_ingestion_task(app, build_consumer(components))
    logger.info(
        "Worker starting",
        queue=INGESTION_QUEUE,
        attempts=settings.retry.attempts,
        backoff=settings.retry.backoff,
        batch_size=settings.ingest_batch_size,
    )
    app.worker_main([
        "worker",
        "--concurrency=1",
        "--prefetch-multiplier=1",
        "-Q", INGESTION_QUEUE,
        f"--loglevel={settings.log_level}",
    ])


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="docrag-worker", description="PDF ingestion worker")
    parser.add_argument("command", nargs="?", default="worker", choices=["worker", "migrate", "reconcile"])
    args = parser.parse_args(argv)

    settings = Settings.from_env()
    logging_config.setup_logging(settings.log_level, settings.log_json)
    components = build_components(settings)

    try:
        if args.command == "migrate":
            run_sql_migrations(components.engine)
        elif args.command == "reconcile":
            failed = reconcile(components)
            logger.info("Reconciliation done", failed=len(failed))
        else:
            run_worker(components)
    finally:
        components.close()
        logger.info("Worker stopped")


if __name__ == "__main__":
    main()
