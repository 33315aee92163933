"""Base model mixins."""

from sqlalchemy import Column, DateTime

from src.utils.dates import utcnow


class TimestampMixin:
    """Mixin for adding created_at and updated_at timestamps."""

    created_at = Column(
        DateTime,
        default=utcnow,
        nullable=False,
        comment="Record creation timestamp (UTC)"
    )
    updated_at = Column(
        DateTime,
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
        comment="Record last update timestamp (UTC)"
    )
