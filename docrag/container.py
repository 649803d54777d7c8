"""
Process wiring.
Every collaborator is built once here from Settings and handed to its users;
no module builds its own clients at import time.
"""
from dataclasses import dataclass

from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from .chunking import Chunker
from .config import Settings
from .db import create_db_engine, create_session_factory
from .embedding import EmbeddingProvider, build_embedding_provider
from .queue import JobQueue, create_celery_app
from .status import DocumentStatusTracker
from .storage import BlobStorage
from .vector_store import VectorStore


@dataclass
class Components:
    settings: Settings
    engine: Engine
    session_factory: sessionmaker
    storage: BlobStorage
    vector_store: VectorStore
    tracker: DocumentStatusTracker
    embedder: EmbeddingProvider
    chunker: Chunker
    queue: JobQueue

    def close(self) -> None:
        self.queue.close()
        self.engine.dispose()


def build_components(settings: Settings) -> Components:
    engine = create_db_engine(settings.database_url)
    session_factory = create_session_factory(engine)
    return Components(
        settings=settings,
        engine=engine,
        session_factory=session_factory,
        storage=BlobStorage(
            settings.blob_bucket,
            endpoint_url=settings.blob_endpoint_url,
            region=settings.blob_region,
        ),
        vector_store=VectorStore(engine),
        tracker=DocumentStatusTracker(session_factory),
        embedder=build_embedding_provider(settings),
        chunker=Chunker(settings.chunk_size, settings.chunk_overlap),
        queue=JobQueue(create_celery_app(settings), settings.retry),
    )
