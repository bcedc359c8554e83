# views.py
"""Read-side compositions of proposals, slots and users.

Nothing in here writes. Each function is one query, so callers get a
point-in-time consistent picture without holding any locks.
"""
from typing import Dict, List, Optional

import sqlalchemy
from databases import Database

from slot_swap.data_models import Slot, SlotStatus, as_utc
from slot_swap.models import proposals, slots, users


def _iso(value) -> Optional[str]:
    value = as_utc(value)
    return value.isoformat() if value else None


def slot_to_dict(slot: Slot) -> dict:
    return {
        "id": slot.id,
        "owner_id": slot.owner_id,
        "title": slot.title,
        "start_time": _iso(slot.start_time),
        "end_time": _iso(slot.end_time),
        "status": slot.status.value,
    }


def _slot_columns(table, prefix: str) -> list:
    return [
        table.c.id.label(f"{prefix}_id"),
        table.c.owner_id.label(f"{prefix}_owner_id"),
        table.c.title.label(f"{prefix}_title"),
        table.c.start_time.label(f"{prefix}_start_time"),
        table.c.end_time.label(f"{prefix}_end_time"),
        table.c.status.label(f"{prefix}_status"),
    ]


def _user_columns(table, prefix: str) -> list:
    return [
        table.c.id.label(f"{prefix}_id"),
        table.c.name.label(f"{prefix}_name"),
        table.c.email.label(f"{prefix}_email"),
    ]


def _slot_view(record, prefix: str) -> dict:
    return {
        "id": record[f"{prefix}_id"],
        "owner_id": record[f"{prefix}_owner_id"],
        "title": record[f"{prefix}_title"],
        "start_time": _iso(record[f"{prefix}_start_time"]),
        "end_time": _iso(record[f"{prefix}_end_time"]),
        "status": SlotStatus(record[f"{prefix}_status"]).value,
    }


def _user_view(record, prefix: str) -> dict:
    return {
        "id": record[f"{prefix}_id"],
        "name": record[f"{prefix}_name"],
        "email": record[f"{prefix}_email"],
    }


offered_slot = slots.alias("offered_slot")
requested_slot = slots.alias("requested_slot")
proposer = users.alias("proposer")
recipient = users.alias("recipient")


def _proposal_select():
    return sqlalchemy.select(
        proposals.c.id,
        proposals.c.status,
        proposals.c.created_at,
        proposals.c.resolved_at,
        *_slot_columns(offered_slot, "offered"),
        *_slot_columns(requested_slot, "requested"),
        *_user_columns(proposer, "proposer"),
        *_user_columns(recipient, "recipient"),
    ).select_from(
        proposals.join(offered_slot, proposals.c.offered_slot_id == offered_slot.c.id)
        .join(requested_slot, proposals.c.requested_slot_id == requested_slot.c.id)
        .join(proposer, proposals.c.proposer_id == proposer.c.id)
        .join(recipient, proposals.c.recipient_id == recipient.c.id)
    )


def _proposal_view(record) -> dict:
    return {
        "id": record["id"],
        "status": record["status"],
        "created_at": _iso(record["created_at"]),
        "resolved_at": _iso(record["resolved_at"]),
        "proposer": _user_view(record, "proposer"),
        "recipient": _user_view(record, "recipient"),
        "offered_slot": _slot_view(record, "offered"),
        "requested_slot": _slot_view(record, "requested"),
    }


async def get_proposal_view(db: Database, proposal_id: int) -> Optional[dict]:
    record = await db.fetch_one(_proposal_select().where(proposals.c.id == proposal_id))
    return _proposal_view(record) if record else None


async def list_proposals(db: Database, user_id: int) -> Dict[str, List[dict]]:
    """Split the user's proposals into incoming and outgoing, newest first."""
    query = (
        _proposal_select()
        .where(sqlalchemy.or_(proposals.c.recipient_id == user_id, proposals.c.proposer_id == user_id))
        .order_by(sqlalchemy.desc(proposals.c.created_at), sqlalchemy.desc(proposals.c.id))
    )
    result = {"incoming": [], "outgoing": []}
    for record in await db.fetch_all(query):
        view = _proposal_view(record)
        if view["recipient"]["id"] == user_id:
            result["incoming"].append(view)
        else:
            result["outgoing"].append(view)
    return result


async def list_exchangeable_slots(db: Database, requester_id: int) -> List[dict]:
    """Every exchangeable slot not owned by the requester, with its owner attached."""
    query = (
        sqlalchemy.select(*_slot_columns(slots, "slot"), *_user_columns(users, "owner"))
        .select_from(slots.join(users, slots.c.owner_id == users.c.id))
        .where(slots.c.status == SlotStatus.EXCHANGEABLE.value, slots.c.owner_id != requester_id)
        .order_by(slots.c.start_time, slots.c.id)
    )
    results = []
    for record in await db.fetch_all(query):
        view = _slot_view(record, "slot")
        view["owner"] = _user_view(record, "owner")
        results.append(view)
    return results
