# proposals.py
import logging
from typing import Iterable, List, Optional

import sqlalchemy
from databases import Database

from slot_swap.data_models import Proposal, ProposalStatus, utcnow
from slot_swap.errors import AlreadyProcessed
from slot_swap.models import proposals

logger = logging.getLogger(__name__)


class ProposalStore:
    """Owns proposal rows. Callers wrap multi-row writes in a unit of work."""

    def __init__(self, db: Database):
        self.db = db

    async def get(self, proposal_id: int) -> Optional[Proposal]:
        record = await self.db.fetch_one(proposals.select().where(proposals.c.id == proposal_id))
        return Proposal.from_record(record) if record else None

    async def find_open_touching(self, slot_ids: Iterable[int]) -> Optional[Proposal]:
        """Return an OPEN proposal offering or requesting any of ``slot_ids``.

        Both the conflict guard on creation and the slot mutation guard go
        through this lookup.
        """
        ids = list(set(slot_ids))
        query = (
            proposals.select()
            .where(
                proposals.c.status == ProposalStatus.OPEN.value,
                sqlalchemy.or_(
                    proposals.c.offered_slot_id.in_(ids),
                    proposals.c.requested_slot_id.in_(ids),
                ),
            )
            .order_by(proposals.c.id)
        )
        record = await self.db.fetch_one(query)
        return Proposal.from_record(record) if record else None

    async def is_referenced(self, slot_id: int) -> bool:
        """True if any proposal, whatever its status, names the slot."""
        query = proposals.select().where(
            sqlalchemy.or_(proposals.c.offered_slot_id == slot_id, proposals.c.requested_slot_id == slot_id)
        )
        return await self.db.fetch_one(query) is not None

    async def list_open(self) -> List[Proposal]:
        query = proposals.select().where(proposals.c.status == ProposalStatus.OPEN.value)
        return [Proposal.from_record(r) for r in await self.db.fetch_all(query)]

    async def insert(self, proposer_id: int, recipient_id: int, offered_slot_id: int, requested_slot_id: int) -> int:
        query = proposals.insert().values(
            proposer_id=proposer_id,
            recipient_id=recipient_id,
            offered_slot_id=offered_slot_id,
            requested_slot_id=requested_slot_id,
            status=ProposalStatus.OPEN.value,
            created_at=utcnow(),
            resolved_at=None,
        )
        proposal_id = await self.db.execute(query)
        logger.info(
            f"Proposal {proposal_id} opened: user {proposer_id} offers slot {offered_slot_id} "
            f"for slot {requested_slot_id} of user {recipient_id}"
        )
        return proposal_id

    async def mark_resolved(self, proposal: Proposal, status: ProposalStatus) -> Proposal:
        if not proposal.status.can_transition_to(status):
            raise AlreadyProcessed("This swap request has already been processed.")
        resolved_at = utcnow()
        query = (
            proposals.update()
            .where(proposals.c.id == proposal.id, proposals.c.status == ProposalStatus.OPEN.value)
            .values(status=status.value, resolved_at=resolved_at)
        )
        await self.db.execute(query)
        proposal.status = status
        proposal.resolved_at = resolved_at
        return proposal
