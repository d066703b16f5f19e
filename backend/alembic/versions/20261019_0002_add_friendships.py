"""Add the derived friendships table keyed by the canonical user pair."""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa

revision: str = "20261019_0002"
down_revision: str | None = "20261019_0001"
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None

TIMESTAMP_DEFAULT = sa.text("CURRENT_TIMESTAMP")


def upgrade() -> None:
    op.create_table(
        "friendships",
        sa.Column("user_low_id", sa.String(length=36), nullable=False),
        sa.Column("user_high_id", sa.String(length=36), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=TIMESTAMP_DEFAULT,
            nullable=False,
        ),
        sa.CheckConstraint("user_low_id < user_high_id", name="ck_friendships_canonical_pair"),
        sa.ForeignKeyConstraint(["user_low_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_high_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("user_low_id", "user_high_id"),
    )
    op.create_index(
        "ix_friendships_high_created_at",
        "friendships",
        ["user_high_id", "created_at"],
        unique=False,
    )
    op.create_index(
        "ix_friendships_low_created_at",
        "friendships",
        ["user_low_id", "created_at"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_friendships_low_created_at", table_name="friendships")
    op.drop_index("ix_friendships_high_created_at", table_name="friendships")
    op.drop_table("friendships")
