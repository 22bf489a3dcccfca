"""
SQLAlchemy model for the users table.

Clients, providers and agencies share one table; providers and agencies
are told apart by ``role``. Location columns are optional: a profile may
carry only a city and province.
"""

import enum
from typing import Optional

from sqlalchemy import JSON, Enum, Float, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, StringPrimaryKeyMixin, TimestampMixin


class UserRole(str, enum.Enum):
    CLIENT = "client"
    PROVIDER = "provider"
    AGENCY = "agency"
    ADMIN = "admin"


class AvailabilityStatus(str, enum.Enum):
    AVAILABLE = "available"
    LIMITED = "limited"
    UNAVAILABLE = "unavailable"


class VerificationStatus(str, enum.Enum):
    UNVERIFIED = "unverified"
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


class User(StringPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "users"

    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole, name="user_role"),
        nullable=False,
        index=True,
    )

    # Profile
    display_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    bio: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    photo_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Offer
    key_services: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    availability_status: Mapped[Optional[AvailabilityStatus]] = mapped_column(
        Enum(AvailabilityStatus, name="availability_status"),
        nullable=True,
    )
    verification_status: Mapped[VerificationStatus] = mapped_column(
        Enum(VerificationStatus, name="verification_status"),
        nullable=False,
        default=VerificationStatus.UNVERIFIED,
    )

    # Location
    address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    province: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    # Relationships
    reviews_received: Mapped[list["Review"]] = relationship(
        "Review", back_populates="provider", foreign_keys="Review.provider_id"
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, role={self.role}, city={self.city})>"
