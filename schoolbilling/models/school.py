"""School model.

Schools are owned by the school administration service; billing only reads them
and records the payment gateway customer once.
"""

from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from schoolbilling.models._base import Base

if TYPE_CHECKING:
    from schoolbilling.models.school_subscription import SchoolSubscription


class School(Base):
    """School model."""

    __tablename__ = "school"

    name: Mapped[str] = mapped_column(String, nullable=False, unique=True)

    # Set once by checkout (or the first checkout webhook), never overwritten
    payment_gateway_customer_ref: Mapped[Optional[str]] = mapped_column(
        String, nullable=True, unique=True
    )

    subscriptions: Mapped[List["SchoolSubscription"]] = relationship(
        "SchoolSubscription", back_populates="school", lazy="noload"
    )
