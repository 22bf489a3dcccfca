"""
SQLAlchemy model for the reviews table.
"""

import enum
from decimal import Decimal
from typing import Optional

from sqlalchemy import Enum, ForeignKey, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, StringPrimaryKeyMixin, TimestampMixin


class ReviewStatus(str, enum.Enum):
    PENDING = "pending"
    PUBLISHED = "published"
    HIDDEN = "hidden"
    REMOVED = "removed"


class Review(StringPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "reviews"

    provider_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    reviewer_id: Mapped[Optional[str]] = mapped_column(
        String(64),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    # Overall rating (1-5)
    rating: Mapped[Decimal] = mapped_column(Numeric(3, 2), nullable=False)
    comment: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    status: Mapped[ReviewStatus] = mapped_column(
        Enum(ReviewStatus, name="review_status"),
        nullable=False,
        default=ReviewStatus.PUBLISHED,
    )

    provider: Mapped["User"] = relationship(
        "User", back_populates="reviews_received", foreign_keys=[provider_id]
    )

    def __repr__(self) -> str:
        return (
            f"<Review(id={self.id}, provider={self.provider_id}, "
            f"rating={self.rating}, status={self.status})>"
        )
