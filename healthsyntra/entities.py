# healthsyntra/entities.py
from datetime import datetime
from uuid import uuid4

from sqlalchemy import DateTime, Index, Integer, String, func
from sqlalchemy.orm import Mapped, declarative_base, mapped_column

Base = declarative_base()


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )


class PendingCheckout(Base, TimestampMixin):
    __tablename__ = "pending_checkout"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid4()),
    )

    # Stripe Checkout Session id (cs_...)
    session_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
        index=True,
    )

    user_email: Mapped[str] = mapped_column(String(320), nullable=False)

    plan_id: Mapped[str | None] = mapped_column(String(32))
    plan_name: Mapped[str] = mapped_column(String(64), nullable=False)

    # Minor units (cents), as sent to Stripe
    amount_minor: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    # Only PENDING is ever written: nothing confirms the payment yet.
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="PENDING",
    )

    __table_args__ = (
        Index("ix_pending_checkout_status", "status"),
    )
