"""
SearchQueryRecord Model

Append-only log of executed searches, used for analytics and retention purges.
"""

from sqlalchemy import JSON, Column, DateTime, Enum, Float, Index, Integer, String

from app.constants import ContentType
from app.database import Base
from app.utils.dates import utcnow


class SearchQueryRecord(Base):
    __tablename__ = "search_queries"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    query = Column(String(500), nullable=False, index=True)
    language = Column(String(10), nullable=False, default="en")
    content_type = Column(Enum(ContentType, native_enum=False, length=20), nullable=True)
    filters = Column(JSON, nullable=True)
    results_count = Column(Integer, nullable=False, default=0)
    execution_time_ms = Column(Float, nullable=False, default=0.0)
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(String(500), nullable=True)
    user_id = Column(String(100), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (Index("ix_search_queries_created_at", "created_at"),)
