from __future__ import annotations
import enum
import uuid
from datetime import datetime
from decimal import Decimal
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, Numeric, DateTime, ForeignKey, UniqueConstraint, Enum, Uuid, func
from goodgrid.db import Base, JSONDoc, utcnow


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    PROCESSED = "PROCESSED"
    FAILED = "FAILED"


class RewardDistribution(Base):
    """
    Immutable reward ledger, one row per approved submission.
    Amounts are the exact values applied to UserStats (after the quality multiplier).
    Only payment_status ever changes: PENDING -> PROCESSED | FAILED.
    """
    __tablename__ = "reward_distributions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    submission_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("task_submissions.id", ondelete="CASCADE"), index=True, nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, index=True, nullable=False)

    xp_awarded: Mapped[int] = mapped_column(Integer, nullable=False)
    trust_score_change: Mapped[int] = mapped_column(Integer, nullable=False)  # may be negative
    rwis_awarded: Mapped[int] = mapped_column(Integer, nullable=False)
    quality_score: Mapped[int] = mapped_column(Integer, nullable=False)  # 0..100 input to the multiplier
    badges_awarded: Mapped[list] = mapped_column(JSONDoc, nullable=False, default=list)  # badge ids (str)

    payment_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    payment_status: Mapped[PaymentStatus | None] = mapped_column(
        Enum(PaymentStatus, native_enum=False, length=16), index=True, nullable=True
    )

    distributed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    __table_args__ = (
        # exactly one ledger row per approved submission
        UniqueConstraint("submission_id", name="uq_reward_distribution_submission"),
    )
