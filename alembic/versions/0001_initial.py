"""initial schema: user, event, registration

Revision ID: 0001
Revises:
Create Date: 2026-10-19 12:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
import sqlmodel


# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

CATEGORIES = ("Music", "Dance", "Drama", "Art", "Sports", "Technical", "Literary", "Other")


def upgrade() -> None:
    op.create_table(
        "user",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tg_id", sa.Integer(), nullable=False),
        sa.Column("email", sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column("name", sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column("role", sa.Enum("student", "admin", name="userrole"), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_user_tg_id", "user", ["tg_id"], unique=True)
    op.create_index("ix_user_role", "user", ["role"], unique=False)

    op.create_table(
        "event",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sqlmodel.sql.sqltypes.AutoString(length=100), nullable=False),
        sa.Column("description", sqlmodel.sql.sqltypes.AutoString(length=1000), nullable=False),
        sa.Column("category", sa.Enum(*CATEGORIES, name="eventcategory"), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("time", sa.Time(), nullable=False),
        sa.Column("venue", sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column("capacity", sa.Integer(), nullable=False),
        sa.Column("registered_count", sa.Integer(), nullable=False),
        sa.Column("created_by", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["created_by"], ["user.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_event_category", "event", ["category"], unique=False)
    op.create_index("ix_event_date", "event", ["date"], unique=False)

    op.create_table(
        "registration",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("event_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.Enum("pending", "confirmed", "cancelled", name="registrationstatus"), nullable=False),
        sa.Column("registered_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["user.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_registration_user_id", "registration", ["user_id"], unique=False)
    op.create_index("ix_registration_event_id", "registration", ["event_id"], unique=False)
    op.create_index("ix_registration_status", "registration", ["status"], unique=False)
    op.create_index("ix_registration_user_event", "registration", ["user_id", "event_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_registration_user_event", table_name="registration")
    op.drop_index("ix_registration_status", table_name="registration")
    op.drop_index("ix_registration_event_id", table_name="registration")
    op.drop_index("ix_registration_user_id", table_name="registration")
    op.drop_table("registration")
    op.drop_index("ix_event_date", table_name="event")
    op.drop_index("ix_event_category", table_name="event")
    op.drop_table("event")
    op.drop_index("ix_user_role", table_name="user")
    op.drop_index("ix_user_tg_id", table_name="user")
    op.drop_table("user")
