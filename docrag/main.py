"""
Main FastAPI application entry point.
Responsibilities: App setup, router registration, startup/shutdown hooks.
"""
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from . import logging_config
from .config import Settings
from .container import build_components
from .db.migrations import run_sql_migrations
from .errors import DocRagError
from .logging_config import logger
from .retrieval import RetrievalService
from .routes import chat, documents
from .services.document_service import DocumentService
from .services.rag_service import ResponseJobService

# -------------------------------------------------
# App setup
# -------------------------------------------------

app = FastAPI(title="Docs RAG", version="0.1.0")

# Register routers
app.include_router(documents.router)
app.include_router(chat.router)


@app.exception_handler(DocRagError)
async def docrag_error_handler(request: Request, exc: DocRagError):
    if exc.status_code >= 500:
        logger.error("Request failed", path=request.url.path, kind=exc.kind.value, error=str(exc))
    else:
        logger.warning("Request rejected", path=request.url.path, kind=exc.kind.value, error=exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.message, "kind": exc.kind.value},
    )


@app.get("/")
def root():
    return {"message": "Docs RAG backend is running", "status": "ok"}


@app.get("/health")
def health():
    return {"status": "healthy"}


@app.on_event("startup")
async def startup_event():
    """Build services and apply migrations. Tests pre-populate app.state instead."""
    if getattr(app.state, "document_service", None) is not None:
        return

    settings = Settings.from_env()
    logging_config.setup_logging(settings.log_level, settings.log_json)

    logger.info("Running database migrations...")
    components = build_components(settings)
    run_sql_migrations(components.engine)
    logger.info("Database migrations completed")

    app.state.components = components
    app.state.document_service = DocumentService(
        components.session_factory,
        components.storage,
        components.queue,
        components.vector_store,
        components.tracker,
        max_documents_per_user=settings.max_documents_per_user,
    )
    app.state.response_jobs = ResponseJobService(
        RetrievalService(components.embedder, components.vector_store, settings.retrieval_top_k),
        components.queue,
    )
    logger.info("Application started", port=settings.port)


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown."""
    components = getattr(app.state, "components", None)
    if components is not None:
        components.close()
    logger.info("Application shutting down")
