"""Create pages table

Revision ID: 001
Revises: None
Create Date: 2026-10-19 00:00:00.000000+00:00

What:  Creates the `pages` table holding the documentation pages of APIs.
How:   Portable column types (generic UUID, timezone-aware DateTime) so the
       same revision runs on PostgreSQL and SQLite.

Rollback: downgrade() drops the table entirely (destructive: all data lost).
"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "pages",
        sa.Column("id", sa.Uuid(), nullable=False, comment="Unique identifier, immutable after creation"),
        sa.Column("api_id", sa.String(64), nullable=False, comment="Owning API; partitions the ordering domain"),
        sa.Column("name", sa.String(255), nullable=False, comment="Display name"),
        sa.Column(
            "type",
            sa.Enum("MARKDOWN", "RAML", "SWAGGER", name="page_type", native_enum=False, length=16),
            nullable=False,
            comment="Content flavour: MARKDOWN, RAML, SWAGGER",
        ),
        sa.Column("content", sa.Text(), nullable=True, comment="Page body (Markdown, RAML, Swagger JSON/YAML)"),
        sa.Column("last_contributor", sa.String(255), nullable=True),
        sa.Column(
            "position",
            sa.Integer(),
            nullable=False,
            server_default=sa.text("0"),
            comment="0-based display order within the API",
        ),
        sa.Column("published", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            comment="When this page was created (UTC)",
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            comment="Last modification (UTC)",
        ),
        sa.PrimaryKeyConstraint("id"),
    )

    # Not unique: reorders are written row by row and pass through duplicates
    op.create_index("idx_pages_api_position", "pages", ["api_id", "position"])


def downgrade() -> None:
    """Drop the pages table. All page data is lost."""
    op.drop_index("idx_pages_api_position", table_name="pages")
    op.drop_table("pages")
