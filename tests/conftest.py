"""
Pytest configuration and fixtures.
"""
import hashlib
import hmac
import io
import os
import time
from typing import Any, Callable, Dict, Generator, List, Optional

# Settings are cached on first import; configure the environment before that.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_banksheet"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_banksheet"
os.environ["XENDIT_SECRET_KEY"] = "xnd_development_banksheet"
os.environ["XENDIT_CALLBACK_SECRET"] = "xendit_callback_banksheet"
os.environ["STRUCTURING_API_KEY"] = ""
os.environ["SENTRY_DSN"] = ""

import pytest
from fastapi.testclient import TestClient
from openpyxl import Workbook
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from banksheet.database import Base, get_db
from banksheet.exceptions import QueueUnavailableError
from banksheet.main import app
from banksheet.models.job import ProcessingJob
from banksheet.queue import ProcessingQueue, QueueMessage
from banksheet.services.job_store import JobStore


# Create in-memory SQLite database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

XLSX_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

SAMPLE_COLUMNS = [
    {"name": "Date", "key": "date"},
    {"name": "Description", "key": "description"},
    {"name": "Debit", "key": "debit"},
    {"name": "Credit", "key": "credit"},
    {"name": "Balance", "key": "balance"},
    {"name": "Category", "key": "category"},
]


class FakeQueue(ProcessingQueue):
    """In-memory queue that records what intake sends."""

    def __init__(self):
        self.messages: List[QueueMessage] = []
        self.connected = False
        self.closed = False
        self.fail = False

    def connect(self) -> None:
        self.connected = True

    def enqueue(self, message: QueueMessage) -> None:
        if self.fail:
            raise QueueUnavailableError()
        self.messages.append(message)

    def close(self) -> None:
        self.closed = True


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """Create a fresh database session for each test."""
    Base.metadata.create_all(bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def fake_queue() -> FakeQueue:
    return FakeQueue()


@pytest.fixture(scope="function")
def client(db_session: Session, fake_queue: FakeQueue) -> Generator[TestClient, None, None]:
    """Create a test client with database and queue overrides."""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.state.queue = fake_queue

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
    app.state.queue = None


@pytest.fixture
def job_store(db_session: Session) -> JobStore:
    return JobStore(db_session)


def make_rows(count: int) -> List[Dict[str, Any]]:
    return [
        {
            "date": f"2024-01-{i + 1:02d}",
            "description": f"Transaction {i + 1}",
            "debit": 10.0 * (i + 1),
            "credit": None,
            "balance": 1000.0 - 10.0 * (i + 1),
            "category": "Food",
        }
        for i in range(count)
    ]


@pytest.fixture
def make_completed_job(job_store: JobStore) -> Callable[..., ProcessingJob]:
    """Factory for jobs that finished processing with a preview."""

    def _make(rows: int = 8, confidence: float = 0.92, email: Optional[str] = None) -> ProcessingJob:
        job = job_store.create(file_type="application/pdf", file_name="statement.pdf", user_email=email)
        job_store.mark_processing(job.job_id, 1)
        preview = {
            "columns": SAMPLE_COLUMNS,
            "rows": make_rows(rows),
            "confidenceScore": confidence,
            "detectedBank": "Chase",
            "fileType": "application/pdf",
            "source": "ai",
            "needsReview": False,
            "warnings": [],
        }
        return job_store.mark_completed(job.job_id, preview, confidence)

    return _make


@pytest.fixture
def xlsx_bytes() -> bytes:
    """Small statement workbook."""
    wb = Workbook()
    ws = wb.active
    ws.title = "January"
    ws.append(["Date", "Description", None, "Amount"])
    ws.append(["2024-01-02", "CHASE COFFEE", "x", 4.5])
    ws.append([None, None, None, None])
    ws.append(["2024-01-03", "Payroll", None, 2500])
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


@pytest.fixture
def sign_stripe() -> Callable[[bytes], str]:
    """Build a Stripe-Signature header for a payload."""

    def _sign(payload: bytes, secret: str = os.environ["STRIPE_WEBHOOK_SECRET"], timestamp: Optional[int] = None) -> str:
        ts = timestamp or int(time.time())
        signed = f"{ts}.{payload.decode('utf-8')}".encode("utf-8")
        digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
        return f"t={ts},v1={digest}"

    return _sign


@pytest.fixture
def sign_xendit() -> Callable[[bytes], str]:
    """Build an x-callback-signature header for a payload."""

    def _sign(payload: bytes, secret: str = os.environ["XENDIT_CALLBACK_SECRET"]) -> str:
        return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()

    return _sign
