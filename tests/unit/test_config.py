"""Unit tests for environment-driven settings."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from docrag.config import Settings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("CHUNK_SIZE", "CHUNK_OVERLAP", "INGEST_BATCH_SIZE", "EMBEDDING_API_KEY",
                 "JINA_API_KEY", "JOB_ATTEMPTS", "JOB_BACKOFF", "JOB_BACKOFF_DELAY_MS", "LOG_JSON"):
        monkeypatch.delenv(name, raising=False)


def test_defaults() -> None:
    settings = Settings.from_env()
    assert settings.chunk_size == 250
    assert settings.chunk_overlap == 30
    assert settings.ingest_batch_size == 5
    assert settings.embedding_dimensions == 384
    assert settings.max_documents_per_user == 15
    assert settings.retry.attempts == 3
    assert settings.retry.delay_ms == 2000


def test_reads_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CHUNK_SIZE", "100")
    monkeypatch.setenv("CHUNK_OVERLAP", "10")
    monkeypatch.setenv("JOB_ATTEMPTS", "5")
    monkeypatch.setenv("JOB_BACKOFF", "fixed")
    monkeypatch.setenv("LOG_JSON", "true")

    settings = Settings.from_env()

    assert (settings.chunk_size, settings.chunk_overlap) == (100, 10)
    assert settings.retry.attempts == 5
    assert settings.retry.backoff == "fixed"
    assert settings.log_json is True


def test_jina_key_fallback(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("JINA_API_KEY", "jina-secret")
    assert Settings.from_env().embedding_api_key == "jina-secret"


def test_overlap_must_be_smaller_than_chunk(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CHUNK_SIZE", "50")
    monkeypatch.setenv("CHUNK_OVERLAP", "50")
    with pytest.raises(ValidationError):
        Settings.from_env()


def test_batch_cannot_exceed_provider_limit() -> None:
    with pytest.raises(ValidationError):
        Settings(ingest_batch_size=60, embedding_max_batch_size=50)
