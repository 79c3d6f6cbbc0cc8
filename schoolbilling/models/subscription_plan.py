"""Subscription plan model."""

from decimal import Decimal
from typing import Optional

from sqlalchemy import JSON, Boolean, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.schema import CheckConstraint

from schoolbilling.models._base import Base


class SubscriptionPlan(Base):
    """Catalog entry a school can subscribe to."""

    __tablename__ = "subscription_plan"

    name: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    # Stored as a plain string so catalog values the billing engine does not know
    # about can still be read (and rejected) instead of failing to load.
    billing_cycle: Mapped[str] = mapped_column(String(20), nullable=False)

    features: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    max_students: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    max_teachers: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (CheckConstraint("price >= 0", name="check_plan_price_non_negative"),)
