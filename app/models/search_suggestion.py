"""
SearchSuggestion Model

Autocomplete candidates ranked by usage frequency, one row per
(normalized term, language).
"""

from sqlalchemy import Boolean, Column, DateTime, Enum, Index, Integer, String, UniqueConstraint

from app.constants import ContentType
from app.database import Base
from app.utils.dates import utcnow


def normalize_term(term: str) -> str:
    """Case-fold and collapse whitespace so lookups ignore cosmetic differences."""
    return " ".join(term.split()).lower()


class SearchSuggestion(Base):
    __tablename__ = "search_suggestions"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    term = Column(String(100), nullable=False)
    normalized_term = Column(String(100), nullable=False)
    language = Column(String(10), nullable=False)
    content_type = Column(Enum(ContentType, native_enum=False, length=20), nullable=True)
    frequency = Column(Integer, nullable=False, default=1)
    last_used_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("normalized_term", "language", name="uq_search_suggestions_term_language"),
        Index("ix_search_suggestions_frequency", "frequency"),
        Index("ix_search_suggestions_last_used_at", "last_used_at"),
    )
