# models.py
import sqlalchemy
from slot_swap.database import metadata

#'users' table
users = sqlalchemy.Table(
    "users",
    metadata,
    sqlalchemy.Column("id", sqlalchemy.Integer, primary_key=True),
    sqlalchemy.Column("email", sqlalchemy.String, unique=True, index=True, nullable=False),
    sqlalchemy.Column("name", sqlalchemy.String, nullable=False),
    sqlalchemy.Column("hashed_password", sqlalchemy.String, nullable=False),
    sqlalchemy.Column("created_at", sqlalchemy.DateTime(timezone=True)),
)

#'slots' table, one row per calendar entry
slots = sqlalchemy.Table(
    "slots",
    metadata,
    sqlalchemy.Column("id", sqlalchemy.Integer, primary_key=True),
    sqlalchemy.Column("owner_id", sqlalchemy.Integer, sqlalchemy.ForeignKey("users.id"), nullable=False, index=True),
    sqlalchemy.Column("title", sqlalchemy.String, nullable=False),
    sqlalchemy.Column("start_time", sqlalchemy.DateTime(timezone=True), nullable=False),
    sqlalchemy.Column("end_time", sqlalchemy.DateTime(timezone=True), nullable=False),
    sqlalchemy.Column("status", sqlalchemy.String, nullable=False, default="ORDINARY", index=True),
    sqlalchemy.Column("created_at", sqlalchemy.DateTime(timezone=True)),
    sqlalchemy.Column("updated_at", sqlalchemy.DateTime(timezone=True)),
    sqlalchemy.CheckConstraint("start_time < end_time", name="ck_slots_time_order"),
)

proposals = sqlalchemy.Table(
    "proposals",
    metadata,
    sqlalchemy.Column("id", sqlalchemy.Integer, primary_key=True),
    sqlalchemy.Column("proposer_id", sqlalchemy.Integer, sqlalchemy.ForeignKey("users.id"), nullable=False, index=True),
    sqlalchemy.Column("recipient_id", sqlalchemy.Integer, sqlalchemy.ForeignKey("users.id"), nullable=False, index=True),
    sqlalchemy.Column("offered_slot_id", sqlalchemy.Integer, sqlalchemy.ForeignKey("slots.id"), nullable=False, index=True),
    sqlalchemy.Column("requested_slot_id", sqlalchemy.Integer, sqlalchemy.ForeignKey("slots.id"), nullable=False, index=True),
    sqlalchemy.Column("status", sqlalchemy.String, nullable=False, default="OPEN", index=True),
    sqlalchemy.Column("created_at", sqlalchemy.DateTime(timezone=True)),
    sqlalchemy.Column("resolved_at", sqlalchemy.DateTime(timezone=True), nullable=True),
    sqlalchemy.CheckConstraint("proposer_id <> recipient_id", name="ck_proposals_distinct_users"),
    sqlalchemy.CheckConstraint("offered_slot_id <> requested_slot_id", name="ck_proposals_distinct_slots"),
)
