"""
Integration tests for the upload endpoint.
"""
from fastapi.testclient import TestClient
from starlette.datastructures import UploadFile as StarletteUploadFile

from banksheet.api.routes import upload as upload_routes
from banksheet.models.job import JobStatus, ProcessingJob
from banksheet.services.job_store import JobStore

PDF_BYTES = b"%PDF-1.4\n%%EOF"


def post_file(client, content=PDF_BYTES, content_type="application/pdf", name="statement.pdf", email=None):
    data = {"email": email} if email is not None else None
    return client.post("/api/upload", files={"file": (name, content, content_type)}, data=data)


class TestUploadAccepted:
    """Tests for accepted uploads."""

    def test_returns_202_with_job(self, client: TestClient, fake_queue):
        response = post_file(client, email="a@example.com")

        assert response.status_code == 202
        data = response.json()
        assert data["status"] == "processing"
        assert data["estimatedTime"] == 15
        assert data["previewUrl"] == f"/api/preview/{data['jobId']}"

    def test_job_created_and_queued(self, client: TestClient, fake_queue, db_session):
        response = post_file(client, email="a@example.com")
        job_id = response.json()["jobId"]

        job = JobStore(db_session).get(job_id)
        assert job.status == JobStatus.UPLOADED
        assert job.file_type == "application/pdf"
        assert job.user_email == "a@example.com"

        assert len(fake_queue.messages) == 1
        message = fake_queue.messages[0]
        assert message.job_id == job_id
        assert message.file_bytes() == PDF_BYTES
        assert message.file_name == "statement.pdf"

    def test_spreadsheet_types_accepted(self, client: TestClient, xlsx_bytes):
        for content_type in (
            "application/vnd.ms-excel",
            "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        ):
            response = post_file(client, xlsx_bytes, content_type, "statement.xlsx")
            assert response.status_code == 202

    def test_blank_email_ignored(self, client: TestClient, db_session):
        response = post_file(client, email="")

        assert response.status_code == 202
        assert JobStore(db_session).get(response.json()["jobId"]).user_email is None


class TestUploadRejected:
    """Tests for intake validation errors."""

    def test_no_file(self, client: TestClient, fake_queue):
        response = client.post("/api/upload", data={"email": "a@example.com"})

        assert response.status_code == 400
        assert response.json()["error_code"] == "NO_FILE"
        assert fake_queue.messages == []

    def test_file_too_large(self, client: TestClient, monkeypatch, fake_queue):
        monkeypatch.setattr(upload_routes.settings, "max_upload_size_mb", 1)

        response = post_file(client, b"0" * (1024 * 1024 + 1))

        assert response.status_code == 413
        data = response.json()
        assert data["error_code"] == "FILE_TOO_LARGE"
        assert data["details"] == {"maxSize": 1024 * 1024, "actualSize": 1024 * 1024 + 1}
        assert fake_queue.messages == []

    def test_oversize_file_rejected_without_reading(self, client: TestClient, monkeypatch):
        reads = []
        original_read = StarletteUploadFile.read

        async def recording_read(self, size=-1):
            data = await original_read(self, size)
            reads.append(len(data))
            return data

        monkeypatch.setattr(upload_routes.settings, "max_upload_size_mb", 1)
        monkeypatch.setattr(StarletteUploadFile, "read", recording_read)

        response = post_file(client, b"0" * (3 * 1024 * 1024))

        assert response.status_code == 413
        assert reads == []

    def test_size_checked_before_type(self, client: TestClient, monkeypatch):
        monkeypatch.setattr(upload_routes.settings, "max_upload_size_mb", 1)

        response = post_file(client, b"0" * (1024 * 1024 + 1), "text/plain", "notes.txt")

        assert response.json()["error_code"] == "FILE_TOO_LARGE"

    def test_invalid_type(self, client: TestClient, fake_queue):
        response = post_file(client, b"hello", "text/plain", "notes.txt")

        assert response.status_code == 400
        data = response.json()
        assert data["error_code"] == "INVALID_FILE_TYPE"
        assert data["details"]["receivedType"] == "text/plain"
        assert "application/pdf" in data["details"]["validTypes"]
        assert fake_queue.messages == []

    def test_invalid_email(self, client: TestClient, fake_queue):
        response = post_file(client, email="not-an-email")

        assert response.status_code == 400
        assert response.json()["error_code"] == "INVALID_EMAIL"
        assert fake_queue.messages == []

    def test_queue_unavailable(self, client: TestClient, fake_queue, db_session):
        fake_queue.fail = True

        response = post_file(client)

        assert response.status_code == 503
        assert response.json()["error_code"] == "QUEUE_UNAVAILABLE"
        job = db_session.query(ProcessingJob).one()
        assert job.status == JobStatus.FAILED
        assert job.error_code == "QUEUE_UNAVAILABLE"
