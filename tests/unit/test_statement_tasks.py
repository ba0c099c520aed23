"""
Unit tests for the Celery processing task and app configuration.
"""
from unittest.mock import MagicMock, patch

import pytest
from celery.exceptions import Retry

from banksheet.celery_app import create_celery_app
from banksheet.config import get_settings
from banksheet.queue import QueueMessage
from banksheet.services.statement_worker import Outcome, WorkerOutcome
from banksheet.tasks.statement_tasks import process_statement


@pytest.fixture
def payload():
    return QueueMessage.for_upload("abc123", "application/pdf", b"%PDF-1.4").to_dict()


def run_with_outcome(payload, outcome: WorkerOutcome):
    worker = MagicMock()
    worker.process.return_value = outcome
    with patch("banksheet.tasks.statement_tasks.get_db_session", return_value=MagicMock()) as session, \
            patch("banksheet.tasks.statement_tasks.build_worker", return_value=worker):
        try:
            return process_statement.run(payload), worker, session.return_value
        except Retry:
            return None, worker, session.return_value


class TestProcessStatementTask:
    """Tests for the task wrapper around StatementWorker."""

    def test_success_returns_outcome(self, payload):
        result, worker, db = run_with_outcome(payload, WorkerOutcome(Outcome.SUCCEEDED, 1))

        assert result == {"jobId": "abc123", "outcome": "succeeded", "attempt": 1}
        message = worker.process.call_args.args[0]
        assert message.job_id == "abc123"
        db.close.assert_called_once()

    def test_retry_outcome_schedules_retry(self, payload):
        with patch.object(process_statement, "retry", side_effect=Retry()) as retry:
            result, _, db = run_with_outcome(payload, WorkerOutcome(Outcome.RETRY, 1, retry_delay=1.0))

        assert result is None
        retry.assert_called_once_with(countdown=1.0, max_retries=get_settings().max_attempts - 1)
        db.close.assert_called_once()

    def test_dead_outcome_does_not_retry(self, payload):
        with patch.object(process_statement, "retry") as retry:
            result, _, _ = run_with_outcome(payload, WorkerOutcome(Outcome.DEAD, 1, error="UNSUPPORTED_FORMAT"))

        assert result["outcome"] == "dead"
        retry.assert_not_called()


class TestCeleryConfig:
    def test_single_consumer_settings(self):
        settings = get_settings()
        app = create_celery_app(settings)

        assert app.conf.task_acks_late is True
        assert app.conf.worker_prefetch_multiplier == 1
        assert app.conf.worker_concurrency == settings.worker_concurrency
        assert app.conf.task_soft_time_limit == settings.processing_timeout_seconds
        assert app.conf.broker_transport_options["visibility_timeout"] > app.conf.task_time_limit
