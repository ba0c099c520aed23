"""
Integration tests for payment provider webhooks.
"""
import json

from fastapi.testclient import TestClient

from banksheet.models.job import JobStatus
from banksheet.models.payment import Payment, PaymentStatus
from banksheet.services.job_store import JobStore


def stripe_event(job_id: str, event_type: str = "checkout.session.completed") -> bytes:
    return json.dumps({
        "id": "evt_1",
        "type": event_type,
        "data": {
            "object": {
                "id": "cs_test_1",
                "amount_total": 500,
                "currency": "usd",
                "customer_details": {"email": "a@example.com"},
                "metadata": {"jobId": job_id},
            }
        },
    }).encode("utf-8")


def xendit_event(job_id: str, event: str = "invoice.paid") -> bytes:
    return json.dumps({
        "event": event,
        "data": {
            "id": "inv_1",
            "external_id": f"job_{job_id}_1700000000",
            "paid_amount": 40000,
            "currency": "IDR",
            "payer_email": "b@example.com",
        },
    }).encode("utf-8")


def post_stripe(client, payload: bytes, signature: str):
    return client.post(
        "/api/webhooks/stripe",
        content=payload,
        headers={"Stripe-Signature": signature, "Content-Type": "application/json"},
    )


def post_xendit(client, payload: bytes, signature: str):
    return client.post(
        "/api/webhooks/xendit",
        content=payload,
        headers={"X-Callback-Signature": signature, "Content-Type": "application/json"},
    )


class TestStripeWebhook:
    """Tests for /api/webhooks/stripe."""

    def test_payment_unlocks_download(self, client: TestClient, make_completed_job, sign_stripe, db_session):
        job = make_completed_job()
        payload = stripe_event(job.job_id)

        response = post_stripe(client, payload, sign_stripe(payload))

        assert response.status_code == 200
        assert response.json() == {"received": True}

        payment = db_session.query(Payment).filter(Payment.job_id == job.job_id).one()
        assert payment.status == PaymentStatus.COMPLETED
        assert payment.amount == 5.0
        assert payment.email == "a@example.com"

        assert client.get(f"/api/download/{job.job_id}").status_code == 200

    def test_redelivery_is_idempotent(self, client: TestClient, make_completed_job, sign_stripe, db_session):
        job = make_completed_job()
        payload = stripe_event(job.job_id)

        post_stripe(client, payload, sign_stripe(payload))
        response = post_stripe(client, payload, sign_stripe(payload))

        assert response.status_code == 200
        assert db_session.query(Payment).filter(Payment.job_id == job.job_id).count() == 1

    def test_bad_signature_rejected(self, client: TestClient, make_completed_job, sign_stripe, db_session):
        job = make_completed_job()
        payload = stripe_event(job.job_id)

        response = post_stripe(client, payload, sign_stripe(payload, secret="whsec_wrong"))

        assert response.status_code == 400
        assert response.json()["error_code"] == "INVALID_SIGNATURE"
        assert db_session.query(Payment).count() == 0

    def test_missing_signature_rejected(self, client: TestClient, make_completed_job):
        job = make_completed_job()

        response = client.post("/api/webhooks/stripe", content=stripe_event(job.job_id))

        assert response.status_code == 400
        assert response.json()["error_code"] == "INVALID_SIGNATURE"

    def test_malformed_body(self, client: TestClient, sign_stripe):
        payload = b"not json"

        response = post_stripe(client, payload, sign_stripe(payload))

        assert response.status_code == 400
        assert response.json()["error_code"] == "INVALID_WEBHOOK_PAYLOAD"

    def test_non_object_event_data(self, client: TestClient, sign_stripe, db_session):
        payload = json.dumps({"type": "checkout.session.completed", "data": {"object": "cs_123"}}).encode("utf-8")

        response = post_stripe(client, payload, sign_stripe(payload))

        assert response.status_code == 400
        assert response.json()["error_code"] == "INVALID_WEBHOOK_PAYLOAD"
        assert db_session.query(Payment).count() == 0

    def test_unrelated_event_acknowledged(self, client: TestClient, make_completed_job, sign_stripe, db_session):
        job = make_completed_job()
        payload = stripe_event(job.job_id, event_type="customer.created")

        response = post_stripe(client, payload, sign_stripe(payload))

        assert response.status_code == 200
        assert db_session.query(Payment).count() == 0

    def test_expired_session_fails_job(self, client: TestClient, make_completed_job, sign_stripe):
        job = make_completed_job()
        payload = stripe_event(job.job_id, event_type="checkout.session.expired")

        response = post_stripe(client, payload, sign_stripe(payload))

        assert response.status_code == 200
        preview = client.get(f"/api/preview/{job.job_id}").json()
        assert preview["status"] == "failed"
        assert preview["error"]["code"] == "PAYMENT_EXPIRED"

    def test_expiry_after_payment_ignored(self, client: TestClient, make_completed_job, sign_stripe, db_session):
        job = make_completed_job()
        paid = stripe_event(job.job_id)
        expired = stripe_event(job.job_id, event_type="checkout.session.expired")

        post_stripe(client, paid, sign_stripe(paid))
        post_stripe(client, expired, sign_stripe(expired))

        assert JobStore(db_session).get(job.job_id).status == JobStatus.COMPLETED
        assert client.get(f"/api/download/{job.job_id}").status_code == 200


class TestXenditWebhook:
    """Tests for /api/webhooks/xendit."""

    def test_paid_invoice_unlocks_download(self, client: TestClient, make_completed_job, sign_xendit, db_session):
        job = make_completed_job()
        payload = xendit_event(job.job_id)

        response = post_xendit(client, payload, sign_xendit(payload))

        assert response.status_code == 200
        assert response.json() == {"received": True}

        payment = db_session.query(Payment).filter(Payment.job_id == job.job_id).one()
        assert payment.currency == "idr"
        assert payment.amount == 40000
        assert client.get(f"/api/download/{job.job_id}").status_code == 200

    def test_flat_status_callback(self, client: TestClient, make_completed_job, sign_xendit, db_session):
        job = make_completed_job()
        payload = json.dumps({
            "id": "inv_2",
            "external_id": f"job_{job.job_id}_1700000000",
            "status": "PAID",
            "paid_amount": 40000,
            "currency": "IDR",
        }).encode("utf-8")

        response = post_xendit(client, payload, sign_xendit(payload))

        assert response.status_code == 200
        assert db_session.query(Payment).filter(Payment.status == PaymentStatus.COMPLETED).count() == 1

    def test_bad_signature_rejected(self, client: TestClient, make_completed_job, sign_xendit, db_session):
        job = make_completed_job()
        payload = xendit_event(job.job_id)

        response = post_xendit(client, payload, sign_xendit(payload, secret="wrong"))

        assert response.status_code == 400
        assert response.json()["error_code"] == "INVALID_SIGNATURE"
        assert db_session.query(Payment).count() == 0

    def test_non_numeric_amount(self, client: TestClient, make_completed_job, sign_xendit, db_session):
        job = make_completed_job()
        payload = json.dumps({
            "event": "invoice.paid",
            "data": {"id": "inv_3", "external_id": f"job_{job.job_id}_1", "paid_amount": "lots"},
        }).encode("utf-8")

        response = post_xendit(client, payload, sign_xendit(payload))

        assert response.status_code == 400
        assert response.json()["error_code"] == "INVALID_WEBHOOK_PAYLOAD"
        assert db_session.query(Payment).count() == 0

    def test_expired_invoice_fails_job(self, client: TestClient, make_completed_job, sign_xendit, db_session):
        job = make_completed_job()
        payload = xendit_event(job.job_id, event="invoice.expired")

        post_xendit(client, payload, sign_xendit(payload))

        job = JobStore(db_session).get(job.job_id)
        assert job.status == JobStatus.FAILED
        assert job.error_code == "PAYMENT_EXPIRED"
