"""create user_credentials table

Revision ID: 4d7e2a9c1b30
Revises:
Create Date: 2026-10-19 09:00:00.000000

One row per connected identity, keyed by the platform user id. Holds the
Google token pair, the last consumed authorization code, the profile shown
after connecting and the human-readable connection status.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '4d7e2a9c1b30'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the user_credentials table."""
    op.create_table(
        'user_credentials',
        # Primary key: platform identity
        sa.Column('user_id', sa.String(length=255), nullable=False),

        # Token data
        sa.Column('access_token', sa.Text(), nullable=True),
        sa.Column('refresh_token', sa.Text(), nullable=True),
        sa.Column('expiration_time', sa.String(length=40), nullable=True),
        sa.Column('last_auth_code', sa.Text(), nullable=True),

        # Profile and status
        sa.Column('display_name', sa.String(length=255), nullable=True),
        sa.Column('picture_url', sa.Text(), nullable=True),
        sa.Column('status_message', sa.Text(), nullable=True),
        sa.Column('timezone', sa.String(length=64), nullable=True),

        # Timestamps
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),

        sa.PrimaryKeyConstraint('user_id'),
    )


def downgrade() -> None:
    """Drop the user_credentials table."""
    op.drop_table('user_credentials')
