"""
NearMatch SQLAlchemy Models
===========================

Central import point for all ORM models. Import ``Base`` from here for
the ``create_all`` convenience in tests.

Usage::

    from nearmatch.models import Base, User, Review
"""

# -- Base & Mixins --
from .base import Base, StringPrimaryKeyMixin, TimestampMixin

# -- Users (clients, providers, agencies) --
from .user import AvailabilityStatus, User, UserRole, VerificationStatus

# -- Reviews --
from .review import Review, ReviewStatus

__all__ = [
    "Base",
    "StringPrimaryKeyMixin",
    "TimestampMixin",
    "AvailabilityStatus",
    "User",
    "UserRole",
    "VerificationStatus",
    "Review",
    "ReviewStatus",
]
