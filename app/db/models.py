"""
Database Models - SQLAlchemy ORM models with strict typing.

NO DICTIONARIES - All columns use Mapped[] type annotations.
"""

from datetime import UTC, datetime
from uuid import UUID, uuid4

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from app.models.api import LedgerEntryKind, RecordStatus


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


class Profile(Base):
    """
    ORM model for profiles table.

    One row per account; the primary key is the auth principal id.
    credits_remaining is only ever changed by the ledger's conditional UPDATEs.
    """

    __tablename__ = "profiles"

    # Primary Key (auth principal id)
    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True)

    # Contact information
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Plan
    plan: Mapped[str] = mapped_column(String(20), nullable=False, default="free")

    # Balance
    credits_remaining: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    # Drone tours claimed; capped for free plans by the ledger's conditional UPDATE
    drone_tours_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    is_admin: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Audit timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint("credits_remaining >= 0", name="ck_credits_non_negative"),
        CheckConstraint("drone_tours_used >= 0", name="ck_drone_tours_used_non_negative"),
        CheckConstraint("plan IN ('free', 'starter', 'pro')", name="ck_profile_plan"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<Profile(id={self.id}, plan={self.plan}, "
            f"credits_remaining={self.credits_remaining})>"
        )


class CreditLedgerEntry(Base):
    """
    ORM model for credit_ledger_entries table.

    Immutable audit of every balance mutation, written in the same
    transaction as the UPDATE it describes.
    """

    __tablename__ = "credit_ledger_entries"

    # Primary Key
    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)

    account_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Correlates the debit with its refund and its generation row
    request_id: Mapped[str] = mapped_column(String(64), nullable=False)

    kind: Mapped[LedgerEntryKind] = mapped_column(
        SQLEnum(
            LedgerEntryKind,
            name="ledger_entry_kind",
            native_enum=False,
            length=10,
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
    )

    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    balance_after: Mapped[int] = mapped_column(BigInteger, nullable=False)
    reason: Mapped[str] = mapped_column(String(255), nullable=False)

    # Audit timestamp
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_ledger_amount_positive"),
        UniqueConstraint("request_id", "kind", name="uq_ledger_request_kind"),
        Index("idx_ledger_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<CreditLedgerEntry(account_id={self.account_id}, kind={self.kind}, "
            f"amount={self.amount}, request_id={self.request_id})>"
        )


class Generation(Base):
    """
    ORM model for generations table.

    One row per generation whose backend call returned a usable result.
    Video jobs start as pending with generated_image_url holding the
    backend operation token verbatim.
    """

    __tablename__ = "generations"

    # Primary Key
    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)

    user_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    property_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    original_image_url: Mapped[str] = mapped_column(Text, nullable=False)
    generated_image_url: Mapped[str] = mapped_column(Text, nullable=False)
    prompt_used: Mapped[str] = mapped_column(Text, nullable=False)
    generation_mode: Mapped[str] = mapped_column(String(50), nullable=False)
    is_compressed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Async job resolution
    status: Mapped[RecordStatus] = mapped_column(
        SQLEnum(
            RecordStatus,
            name="generation_status",
            native_enum=False,
            length=20,
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
        default=RecordStatus.SUCCEEDED,
    )
    result_uri: Mapped[str | None] = mapped_column(Text, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    request_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Audit timestamp
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        Index("idx_generations_user_mode", "user_id", "generation_mode"),
        Index("idx_generations_generated_url", "generated_image_url"),
        Index(
            "idx_generations_request_id",
            "request_id",
            postgresql_where=(request_id.isnot(None)),
        ),
        Index("idx_generations_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<Generation(id={self.id}, user_id={self.user_id}, "
            f"mode={self.generation_mode}, status={self.status})>"
        )


class ApiUsageLog(Base):
    """
    ORM model for api_usage_logs table.

    Best-effort usage and cost events; losing a row never affects a request.
    """

    __tablename__ = "api_usage_logs"

    # Primary Key
    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)

    user_id: Mapped[UUID | None] = mapped_column(PG_UUID(as_uuid=True), nullable=True, index=True)
    endpoint: Mapped[str] = mapped_column(String(100), nullable=False)
    model: Mapped[str] = mapped_column(String(100), nullable=False)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    latency_ms: Mapped[int] = mapped_column(Integer, nullable=False)
    input_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    output_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    credits_charged: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    estimated_cost_usd: Mapped[float] = mapped_column(Numeric(10, 4), nullable=False, default=0)

    # Audit timestamp
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        Index("idx_usage_logs_endpoint_created", "endpoint", "created_at"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<ApiUsageLog(endpoint={self.endpoint}, success={self.success}, "
            f"latency_ms={self.latency_ms})>"
        )
