"""
SearchDocument Model

Denormalized, per-language copy of one piece of external content, used only
for querying. The owning content module stays the source of truth.
"""

from sqlalchemy import JSON, Boolean, Column, DateTime, Enum, Float, Index, Integer, String, UniqueConstraint

from app.constants import BASELINE_RELEVANCE_SCORE, ContentType
from app.database import Base
from app.utils.dates import utcnow


def fold_text(text: str) -> str:
    """Unicode case folding shared by stored search copies and incoming queries."""
    return text.casefold()


def fold_translations(translations: dict | None) -> dict[str, str]:
    return {language: fold_text(text) for language, text in (translations or {}).items() if isinstance(text, str)}


class SearchDocument(Base):
    __tablename__ = "search_documents"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    content_id = Column(String(100), nullable=False)
    content_type = Column(Enum(ContentType, native_enum=False, length=20), nullable=False)

    # Per-language maps, e.g. {"en": "...", "ne": "..."}
    title = Column(JSON, nullable=False, default=dict)
    body = Column(JSON, nullable=False, default=dict)
    description = Column(JSON, nullable=True)
    tags = Column(JSON, nullable=False, default=list)
    # Case-folded copies of title/body that substring search runs against
    search_title = Column(JSON, nullable=False, default=dict)
    search_body = Column(JSON, nullable=False, default=dict)

    language = Column(String(10), nullable=False, default="en")
    is_published = Column(Boolean, nullable=False, default=True)
    is_active = Column(Boolean, nullable=False, default=True)
    relevance_score = Column(Float, nullable=False, default=BASELINE_RELEVANCE_SCORE)

    last_indexed_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    # Content change time; reindexing only touches last_indexed_at
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("content_id", "content_type", name="uq_search_documents_content_key"),
        Index("ix_search_documents_content_type", "content_type"),
        Index("ix_search_documents_language", "language"),
        Index("ix_search_documents_relevance_score", "relevance_score"),
    )

    def __repr__(self) -> str:
        return f"<SearchDocument {self.content_type}:{self.content_id}>"
