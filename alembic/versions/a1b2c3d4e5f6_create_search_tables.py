"""create search_documents, search_queries and search_suggestions tables

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

from collections.abc import Sequence
from typing import Union

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "a1b2c3d4e5f6"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

CONTENT_TYPES = ("CONTENT", "DOCUMENT", "MEDIA", "FAQ", "USER", "DEPARTMENT", "EMPLOYEE")


def content_type_column(nullable: bool) -> sa.Column:
    return sa.Column(
        "content_type",
        sa.Enum(*CONTENT_TYPES, name="contenttype", native_enum=False, length=20),
        nullable=nullable,
    )


def upgrade() -> None:
    op.create_table(
        "search_documents",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("content_id", sa.String(length=100), nullable=False),
        content_type_column(nullable=False),
        sa.Column("title", sa.JSON(), nullable=False),
        sa.Column("body", sa.JSON(), nullable=False),
        sa.Column("description", sa.JSON(), nullable=True),
        sa.Column("tags", sa.JSON(), nullable=False),
        sa.Column("search_title", sa.JSON(), nullable=False),
        sa.Column("search_body", sa.JSON(), nullable=False),
        sa.Column("language", sa.String(length=10), nullable=False, server_default="en"),
        sa.Column("is_published", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("relevance_score", sa.Float(), nullable=False, server_default="0.5"),
        sa.Column("last_indexed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("content_id", "content_type", name="uq_search_documents_content_key"),
    )
    op.create_index("ix_search_documents_id", "search_documents", ["id"])
    op.create_index("ix_search_documents_content_type", "search_documents", ["content_type"])
    op.create_index("ix_search_documents_language", "search_documents", ["language"])
    op.create_index("ix_search_documents_relevance_score", "search_documents", ["relevance_score"])

    op.create_table(
        "search_queries",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("query", sa.String(length=500), nullable=False),
        sa.Column("language", sa.String(length=10), nullable=False, server_default="en"),
        content_type_column(nullable=True),
        sa.Column("filters", sa.JSON(), nullable=True),
        sa.Column("results_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("execution_time_ms", sa.Float(), nullable=False, server_default="0"),
        sa.Column("ip_address", sa.String(length=45), nullable=True),
        sa.Column("user_agent", sa.String(length=500), nullable=True),
        sa.Column("user_id", sa.String(length=100), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_search_queries_id", "search_queries", ["id"])
    op.create_index("ix_search_queries_query", "search_queries", ["query"])
    op.create_index("ix_search_queries_user_id", "search_queries", ["user_id"])
    op.create_index("ix_search_queries_created_at", "search_queries", ["created_at"])

    op.create_table(
        "search_suggestions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("term", sa.String(length=100), nullable=False),
        sa.Column("normalized_term", sa.String(length=100), nullable=False),
        sa.Column("language", sa.String(length=10), nullable=False),
        content_type_column(nullable=True),
        sa.Column("frequency", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("normalized_term", "language", name="uq_search_suggestions_term_language"),
    )
    op.create_index("ix_search_suggestions_id", "search_suggestions", ["id"])
    op.create_index("ix_search_suggestions_frequency", "search_suggestions", ["frequency"])
    op.create_index("ix_search_suggestions_last_used_at", "search_suggestions", ["last_used_at"])


def downgrade() -> None:
    op.drop_table("search_suggestions")
    op.drop_table("search_queries")
    op.drop_table("search_documents")
