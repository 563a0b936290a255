"""Add the system_config table for configuration entries and event subscriptions."""

from typing import Sequence
from typing import Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001_system_config"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the key/value configuration store."""
    op.create_table(
        "system_config",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("key", sa.String(length=255), nullable=False),
        sa.Column("value", postgresql.JSONB(), nullable=True),
        sa.Column("category", sa.String(length=64), nullable=True),
        sa.Column(
            "data_type",
            sa.String(length=32),
            nullable=False,
            server_default=sa.text("'string'"),
        ),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_encrypted", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("requires_restart", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_system_config"),
        sa.UniqueConstraint("key", name="uq_system_config_key"),
    )
    op.create_index("ix_system_config_category", "system_config", ["category"])


def downgrade() -> None:
    """Drop the configuration store."""
    op.drop_index("ix_system_config_category", table_name="system_config")
    op.drop_table("system_config")
