"""School subscription model."""

from datetime import datetime
from typing import TYPE_CHECKING, Optional
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, String, text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.schema import CheckConstraint, Index

from schoolbilling.models._base import Base

if TYPE_CHECKING:
    from schoolbilling.models.school import School
    from schoolbilling.models.subscription_plan import SubscriptionPlan

# Statuses that entitle a school to service; at most one row per school may hold one
ENTITLED_STATUSES_SQL = "status IN ('ACTIVE', 'TRIALING')"


class SchoolSubscription(Base):
    """What a school is subscribed to, and since when."""

    __tablename__ = "school_subscription"

    school_id: Mapped[UUID] = mapped_column(ForeignKey("school.id"), nullable=False)
    plan_id: Mapped[UUID] = mapped_column(ForeignKey("subscription_plan.id"), nullable=False)

    status: Mapped[str] = mapped_column(String(20), nullable=False)

    current_period_start: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), nullable=False
    )
    next_billing_date: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    end_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=False), nullable=True)

    # Stripe subscription id (or pi_/cs_ fallback), the correlation key for webhooks
    external_gateway_ref: Mapped[Optional[str]] = mapped_column(
        String, nullable=True, unique=True
    )

    school: Mapped["School"] = relationship(
        "School", back_populates="subscriptions", lazy="noload"
    )
    plan: Mapped["SubscriptionPlan"] = relationship("SubscriptionPlan", lazy="noload")

    __table_args__ = (
        CheckConstraint(
            "next_billing_date >= current_period_start",
            name="check_next_billing_after_period_start",
        ),
        CheckConstraint(
            "end_date IS NULL OR end_date >= current_period_start",
            name="check_end_date_after_period_start",
        ),
        Index(
            "uq_school_subscription_one_entitled_per_school",
            "school_id",
            unique=True,
            postgresql_where=text(ENTITLED_STATUSES_SQL),
            sqlite_where=text(ENTITLED_STATUSES_SQL),
        ),
        Index("ix_school_subscription_school_status", "school_id", "status"),
        Index("ix_school_subscription_plan", "plan_id"),
    )
