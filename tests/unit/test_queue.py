"""
Unit tests for the processing queue client and message format.
"""
from unittest.mock import MagicMock

import pytest

from banksheet.exceptions import QueueUnavailableError
from banksheet.queue import PROCESS_STATEMENT_TASK, CeleryProcessingQueue, QueueMessage, file_hash


class TestQueueMessage:
    """Tests for the wire format."""

    def test_for_upload_encodes_file(self):
        message = QueueMessage.for_upload("abc123", "application/pdf", b"%PDF-1.4", file_name="jan.pdf")

        assert message.file_bytes() == b"%PDF-1.4"
        assert message.file_hash == file_hash(b"%PDF-1.4")
        assert message.created_at is not None

    def test_dict_uses_camel_case_keys(self):
        message = QueueMessage.for_upload("abc123", "application/pdf", b"data", user_email="a@example.com")

        payload = message.to_dict()

        assert set(payload) == {"jobId", "fileType", "fileBytes", "fileHash", "fileName", "userEmail", "createdAt"}
        assert payload["userEmail"] == "a@example.com"
        assert QueueMessage.from_dict(payload) == message


class TestCeleryProcessingQueue:
    """Tests for the Celery-backed client."""

    def test_enqueue_sends_task_by_name(self):
        app = MagicMock()
        queue = CeleryProcessingQueue(app)
        queue.connect()
        message = QueueMessage.for_upload("abc123", "application/pdf", b"data")

        queue.enqueue(message)

        app.send_task.assert_called_once_with(
            PROCESS_STATEMENT_TASK,
            args=[message.to_dict()],
            task_id="abc123",
            queue="statement_processing",
            connection=app.connection_for_write.return_value,
        )

    def test_broker_failure_raises_queue_unavailable(self):
        app = MagicMock()
        app.send_task.side_effect = ConnectionError("broker down")
        queue = CeleryProcessingQueue(app)

        with pytest.raises(QueueUnavailableError):
            queue.enqueue(QueueMessage.for_upload("abc123", "application/pdf", b"data"))

    def test_connect_failure_is_not_fatal(self):
        app = MagicMock()
        app.connection_for_write.return_value.ensure_connection.side_effect = ConnectionError("down")
        queue = CeleryProcessingQueue(app)

        queue.connect()

        app.connection_for_write.return_value.release.assert_called_once()

    def test_close_releases_connection(self):
        app = MagicMock()
        queue = CeleryProcessingQueue(app)
        queue.connect()

        queue.close()
        queue.close()

        app.connection_for_write.return_value.release.assert_called_once()
