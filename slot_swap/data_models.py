# data_models.py
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


class SlotStatus(str, Enum):
    """Exchange state of a calendar slot."""

    ORDINARY = "ORDINARY"
    EXCHANGEABLE = "EXCHANGEABLE"
    PENDING_EXCHANGE = "PENDING_EXCHANGE"

    def can_transition_to(self, target: "SlotStatus") -> bool:
        return target in SLOT_TRANSITIONS[self]


class ProposalStatus(str, Enum):
    OPEN = "OPEN"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"

    @property
    def is_terminal(self) -> bool:
        return self is not ProposalStatus.OPEN

    def can_transition_to(self, target: "ProposalStatus") -> bool:
        return target in PROPOSAL_TRANSITIONS[self]


# ORDINARY <-> EXCHANGEABLE is the owner's toggle; PENDING_EXCHANGE is entered
# on proposal creation and left on resolution.
SLOT_TRANSITIONS = {
    SlotStatus.ORDINARY: {SlotStatus.ORDINARY, SlotStatus.EXCHANGEABLE},
    SlotStatus.EXCHANGEABLE: {SlotStatus.ORDINARY, SlotStatus.EXCHANGEABLE, SlotStatus.PENDING_EXCHANGE},
    SlotStatus.PENDING_EXCHANGE: {SlotStatus.ORDINARY, SlotStatus.EXCHANGEABLE},
}

PROPOSAL_TRANSITIONS = {
    ProposalStatus.OPEN: {ProposalStatus.ACCEPTED, ProposalStatus.REJECTED},
    ProposalStatus.ACCEPTED: set(),
    ProposalStatus.REJECTED: set(),
}

# Slot state both slots land in once a proposal reaches a terminal state
SLOT_STATUS_AFTER_RESOLUTION = {
    ProposalStatus.ACCEPTED: SlotStatus.ORDINARY,
    ProposalStatus.REJECTED: SlotStatus.EXCHANGEABLE,
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; everything is stored in UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass
class Slot:
    """A single calendar entry and its exchange state."""
    id: int
    owner_id: int
    title: str
    start_time: datetime
    end_time: datetime
    status: SlotStatus

    @classmethod
    def from_record(cls, record) -> "Slot":
        return cls(
            id=record["id"],
            owner_id=record["owner_id"],
            title=record["title"],
            start_time=as_utc(record["start_time"]),
            end_time=as_utc(record["end_time"]),
            status=SlotStatus(record["status"]),
        )


@dataclass
class Proposal:
    """A pairwise offer: proposer gives offered_slot_id, receives requested_slot_id."""
    id: int
    proposer_id: int
    recipient_id: int
    offered_slot_id: int
    requested_slot_id: int
    status: ProposalStatus
    created_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None

    @property
    def slot_ids(self):
        return (self.offered_slot_id, self.requested_slot_id)

    @classmethod
    def from_record(cls, record) -> "Proposal":
        return cls(
            id=record["id"],
            proposer_id=record["proposer_id"],
            recipient_id=record["recipient_id"],
            offered_slot_id=record["offered_slot_id"],
            requested_slot_id=record["requested_slot_id"],
            status=ProposalStatus(record["status"]),
            created_at=as_utc(record["created_at"]),
            resolved_at=as_utc(record["resolved_at"]),
        )
