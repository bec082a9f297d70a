"""add drone tour counter

Revision ID: 2026_10_17_0001
Revises: 2026_10_17_0000
Create Date: 2026-10-17 12:00:00.000000

Moves the free-plan drone tour cap onto the profile row:
- drone_tours_used: tours claimed by the account, incremented by a
  conditional UPDATE before credits are reserved
- backfilled from the drone tour rows already in generations
"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "2026_10_17_0001"
down_revision: str | None = "2026_10_17_0000"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.add_column(
        "profiles",
        sa.Column(
            "drone_tours_used",
            sa.Integer(),
            nullable=False,
            server_default="0",
        ),
    )

    op.execute(
        """
        UPDATE profiles
        SET drone_tours_used = (
            SELECT COUNT(*) FROM generations
            WHERE generations.user_id = profiles.id
              AND generations.generation_mode = 'Drone Tour'
        )
        """
    )

    op.create_check_constraint(
        "ck_drone_tours_used_non_negative",
        "profiles",
        "drone_tours_used >= 0",
    )


def downgrade() -> None:
    op.drop_constraint("ck_drone_tours_used_non_negative", "profiles", type_="check")
    op.drop_column("profiles", "drone_tours_used")
