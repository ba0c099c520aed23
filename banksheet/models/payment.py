"""Payment ledger model."""
import enum
import uuid

from sqlalchemy import Column, DateTime, Enum, Float, Index, String, UniqueConstraint, text
from sqlalchemy.sql import func

from banksheet.database import Base
from banksheet.models.types import JSONDocument, UUID


class PaymentProvider(str, enum.Enum):
    """Supported payment processors."""
    STRIPE = "stripe"
    XENDIT = "xendit"


class PaymentStatus(str, enum.Enum):
    """Payment status values."""
    PENDING = "pending"
    COMPLETED = "completed"


class Payment(Base):
    """
    One checkout attempt for a job.

    Rows are only ever inserted or moved from pending to completed, keyed by
    job id and provider.
    """
    __tablename__ = "payments"
    __table_args__ = (
        UniqueConstraint("job_id", "provider", "provider_payment_id", name="uq_payment_provider_ref"),
        # At most one completed payment per job and provider
        Index(
            "uq_payment_completed_per_provider",
            "job_id",
            "provider",
            unique=True,
            sqlite_where=text("status = 'completed'"),
            postgresql_where=text("status = 'completed'"),
        ),
    )

    id = Column(UUID(), primary_key=True, default=uuid.uuid4)
    job_id = Column(String(64), nullable=False, index=True)

    email = Column(String(320), nullable=True)
    amount = Column(Float, nullable=False, default=0.0)
    currency = Column(String(8), nullable=False)

    provider = Column(Enum(PaymentProvider, values_callable=lambda e: [m.value for m in e]), nullable=False)
    status = Column(
        Enum(PaymentStatus, values_callable=lambda e: [m.value for m in e]),
        default=PaymentStatus.PENDING,
        nullable=False,
    )
    provider_payment_id = Column(String(255), nullable=True, index=True)
    # "metadata" is reserved on declarative classes
    payment_metadata = Column("metadata", JSONDocument, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self) -> str:
        return f"<Payment {self.id} job={self.job_id} provider={self.provider} status={self.status}>"
