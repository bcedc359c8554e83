# slots.py
import logging
from datetime import datetime
from typing import List, Optional

from databases import Database

from slot_swap.data_models import Slot, SlotStatus, as_utc, utcnow
from slot_swap.database import store_errors, unit_of_work
from slot_swap.errors import IntegrityViolation, InvalidInput, SlotLocked, SlotNotFound, SlotReferenced
from slot_swap.locks import SlotLockRegistry
from slot_swap.models import slots
from slot_swap.proposals import ProposalStore

logger = logging.getLogger(__name__)

# Statuses a caller may ask for directly; PENDING_EXCHANGE only comes from a proposal
USER_SETTABLE_STATUSES = {SlotStatus.ORDINARY, SlotStatus.EXCHANGEABLE}


def _check_time_range(start_time: datetime, end_time: datetime):
    if as_utc(end_time) <= as_utc(start_time):
        raise InvalidInput("End time must be after start time.")


def _check_user_status(status: SlotStatus):
    if status not in USER_SETTABLE_STATUSES:
        raise InvalidInput(f"A slot cannot be set to {status.value} directly.")


class SlotStore:
    """Owns slot rows.

    ``set_status`` and ``reassign`` are meant to be called inside a unit of
    work that already holds the slot's lock; ``create``, ``update`` and
    ``delete`` open their own.
    """

    def __init__(self, db: Database, proposal_store: ProposalStore, locks: SlotLockRegistry):
        self.db = db
        self.proposal_store = proposal_store
        self.locks = locks

    async def get(self, slot_id: int, for_update: bool = False) -> Optional[Slot]:
        query = slots.select().where(slots.c.id == slot_id)
        if for_update:
            query = query.with_for_update()
        record = await self.db.fetch_one(query)
        return Slot.from_record(record) if record else None

    async def get_owned(self, owner_id: int, slot_id: int, for_update: bool = False) -> Slot:
        slot = await self.get(slot_id, for_update=for_update)
        if slot is None or slot.owner_id != owner_id:
            raise SlotNotFound("Event not found.")
        return slot

    async def list_for_owner(self, owner_id: int) -> List[Slot]:
        query = slots.select().where(slots.c.owner_id == owner_id).order_by(slots.c.start_time, slots.c.id)
        return [Slot.from_record(r) for r in await self.db.fetch_all(query)]

    async def list_by_status(self, status: SlotStatus) -> List[Slot]:
        query = slots.select().where(slots.c.status == status.value)
        return [Slot.from_record(r) for r in await self.db.fetch_all(query)]

    async def create(
        self,
        owner_id: int,
        title: str,
        start_time: datetime,
        end_time: datetime,
        status: SlotStatus = SlotStatus.ORDINARY,
    ) -> Slot:
        _check_time_range(start_time, end_time)
        _check_user_status(status)
        now = utcnow()
        query = slots.insert().values(
            owner_id=owner_id,
            title=title,
            start_time=as_utc(start_time),
            end_time=as_utc(end_time),
            status=status.value,
            created_at=now,
            updated_at=now,
        )
        # No slot to lock yet, but the insert still queues behind other writers
        async with unit_of_work(self.db, self.locks):
            slot_id = await self.db.execute(query)
        logger.info(f"Slot {slot_id} created for user {owner_id} ({status.value})")
        async with store_errors(f"Reading slot {slot_id}"):
            return await self.get(slot_id)

    async def ensure_editable(self, slot: Slot):
        """Refuse edits to a slot that an OPEN proposal refers to."""
        if slot.status is SlotStatus.PENDING_EXCHANGE:
            raise SlotLocked("Cannot modify an event involved in a pending swap.")
        if await self.proposal_store.find_open_touching([slot.id]):
            logger.error(f"Slot {slot.id} is {slot.status.value} but an open proposal references it")
            raise SlotLocked("Cannot modify an event involved in a pending swap.")

    async def update(
        self,
        owner_id: int,
        slot_id: int,
        title: Optional[str] = None,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
        status: Optional[SlotStatus] = None,
    ) -> Slot:
        async with unit_of_work(self.db, self.locks, slot_id):
            slot = await self.get_owned(owner_id, slot_id, for_update=True)
            await self.ensure_editable(slot)

            values = {}
            if title is not None:
                values["title"] = title
            if start_time is not None or end_time is not None:
                new_start = start_time if start_time is not None else slot.start_time
                new_end = end_time if end_time is not None else slot.end_time
                _check_time_range(new_start, new_end)
                values["start_time"] = as_utc(new_start)
                values["end_time"] = as_utc(new_end)
            if status is not None:
                _check_user_status(status)
                values["status"] = status.value
            if not values:
                return slot

            values["updated_at"] = utcnow()
            await self.db.execute(slots.update().where(slots.c.id == slot_id).values(**values))
            logger.info(f"Slot {slot_id} updated by user {owner_id}: {sorted(values)}")
        async with store_errors(f"Reading slot {slot_id}"):
            return await self.get(slot_id)

    async def delete(self, owner_id: int, slot_id: int):
        """Delete an owned slot that no proposal has ever named.

        Resolved proposals keep pointing at their slots, so those slots stay.
        """
        async with unit_of_work(self.db, self.locks, slot_id):
            slot = await self.get_owned(owner_id, slot_id, for_update=True)
            await self.ensure_editable(slot)
            if await self.proposal_store.is_referenced(slot_id):
                raise SlotReferenced("Cannot delete an event that is part of a swap history.")
            await self.db.execute(slots.delete().where(slots.c.id == slot_id))
        logger.info(f"Slot {slot_id} deleted by user {owner_id}")

    async def set_status(self, slot: Slot, status: SlotStatus) -> Slot:
        return await self.reassign(slot, slot.owner_id, status)

    async def reassign(self, slot: Slot, owner_id: int, status: SlotStatus) -> Slot:
        if not slot.status.can_transition_to(status):
            raise IntegrityViolation(
                f"Slot {slot.id} cannot move from {slot.status.value} to {status.value}."
            )
        query = (
            slots.update()
            .where(slots.c.id == slot.id)
            .values(owner_id=owner_id, status=status.value, updated_at=utcnow())
        )
        await self.db.execute(query)
        slot.owner_id = owner_id
        slot.status = status
        return slot
