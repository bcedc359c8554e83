# negotiation.py
import logging
from collections import Counter
from typing import Dict, List

from databases import Database

from slot_swap import views
from slot_swap.data_models import (
    SLOT_STATUS_AFTER_RESOLUTION,
    ProposalStatus,
    SlotStatus,
)
from slot_swap.database import store_errors, unit_of_work
from slot_swap.eligibility import check_eligibility
from slot_swap.errors import (
    IntegrityViolation,
    InvalidInput,
    NotAuthorized,
    AlreadyProcessed,
    ProposalConflict,
    ProposalNotFound,
    SwapError,
)
from slot_swap.locks import SlotLockRegistry
from slot_swap.proposals import ProposalStore
from slot_swap.slots import SlotStore

logger = logging.getLogger(__name__)


def _check_id(value, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise InvalidInput(f"Invalid {name}.")
    return value


class SwapNegotiationEngine:
    """Creates and resolves swap proposals.

    Every write path runs inside ``unit_of_work``: the locks of the slots it
    touches are held and a single transaction wraps all reads and writes, so
    concurrent handlers see either the whole transition or none of it.
    """

    def __init__(self, db: Database, slot_store: SlotStore, proposal_store: ProposalStore, locks: SlotLockRegistry):
        self.db = db
        self.slot_store = slot_store
        self.proposal_store = proposal_store
        self.locks = locks

    async def list_exchangeable_slots(self, requester_id: int) -> List[dict]:
        _check_id(requester_id, "user id")
        async with store_errors("Listing exchangeable slots"):
            return await views.list_exchangeable_slots(self.db, requester_id)

    async def list_proposals(self, user_id: int) -> Dict[str, List[dict]]:
        _check_id(user_id, "user id")
        async with store_errors("Listing proposals"):
            return await views.list_proposals(self.db, user_id)

    async def create_proposal(self, proposer_id: int, offered_slot_id: int, requested_slot_id: int) -> dict:
        """Open a proposal trading ``offered_slot_id`` for ``requested_slot_id``.

        Both slots move to PENDING_EXCHANGE in the same transaction that
        inserts the proposal.
        """
        _check_id(proposer_id, "user id")
        _check_id(offered_slot_id, "slot id")
        _check_id(requested_slot_id, "slot id")

        try:
            async with unit_of_work(self.db, self.locks, offered_slot_id, requested_slot_id):
                offered = await self.slot_store.get(offered_slot_id, for_update=True)
                requested = await self.slot_store.get(requested_slot_id, for_update=True)
                check_eligibility(offered, requested, proposer_id)

                existing = await self.proposal_store.find_open_touching([offered.id, requested.id])
                if existing is not None:
                    raise ProposalConflict("One or both slots are already involved in a pending swap.")

                proposal_id = await self.proposal_store.insert(
                    proposer_id=proposer_id,
                    recipient_id=requested.owner_id,
                    offered_slot_id=offered.id,
                    requested_slot_id=requested.id,
                )
                await self.slot_store.set_status(offered, SlotStatus.PENDING_EXCHANGE)
                await self.slot_store.set_status(requested, SlotStatus.PENDING_EXCHANGE)
        except SwapError as e:
            logger.warning(
                f"Swap request by user {proposer_id} for slots {offered_slot_id}->{requested_slot_id} refused: {e.code}"
            )
            raise

        async with store_errors(f"Reading proposal {proposal_id}"):
            return await views.get_proposal_view(self.db, proposal_id)

    async def resolve_proposal(self, recipient_id: int, proposal_id: int, accept: bool) -> dict:
        """Accept or reject an OPEN proposal on behalf of its recipient.

        Accepting hands the offered slot to the recipient and the requested
        slot to the proposer; each slot keeps its title and times. Rejecting
        returns both slots to EXCHANGEABLE with their owners unchanged.
        """
        _check_id(recipient_id, "user id")
        _check_id(proposal_id, "proposal id")
        if not isinstance(accept, bool):
            raise InvalidInput("The decision must be true or false.")

        async with store_errors(f"Reading proposal {proposal_id}"):
            proposal = await self.proposal_store.get(proposal_id)
        if proposal is None:
            raise ProposalNotFound("Swap request not found.")

        outcome = ProposalStatus.ACCEPTED if accept else ProposalStatus.REJECTED
        try:
            async with unit_of_work(self.db, self.locks, *proposal.slot_ids):
                # Re-read under the lock; another handler may have resolved it
                proposal = await self.proposal_store.get(proposal_id)
                if proposal.recipient_id != recipient_id:
                    raise NotAuthorized("You are not authorized to respond to this swap request.")
                if proposal.status.is_terminal:
                    raise AlreadyProcessed("This swap request has already been processed.")

                offered = await self.slot_store.get(proposal.offered_slot_id, for_update=True)
                requested = await self.slot_store.get(proposal.requested_slot_id, for_update=True)
                self._check_pairing(proposal, offered, requested)

                await self.proposal_store.mark_resolved(proposal, outcome)
                slot_status = SLOT_STATUS_AFTER_RESOLUTION[outcome]
                if outcome is ProposalStatus.ACCEPTED:
                    await self.slot_store.reassign(offered, proposal.recipient_id, slot_status)
                    await self.slot_store.reassign(requested, proposal.proposer_id, slot_status)
                elif outcome is ProposalStatus.REJECTED:
                    await self.slot_store.set_status(offered, slot_status)
                    await self.slot_store.set_status(requested, slot_status)
                else:
                    raise AssertionError(f"Unhandled outcome: {outcome!r}")
        except SwapError as e:
            logger.warning(f"Response by user {recipient_id} to proposal {proposal_id} refused: {e.code}")
            raise

        logger.info(f"Proposal {proposal_id} {outcome.value.lower()} by user {recipient_id}")
        async with store_errors(f"Reading proposal {proposal_id}"):
            return await views.get_proposal_view(self.db, proposal_id)

    @staticmethod
    def _check_pairing(proposal, offered, requested):
        for slot, expected_owner in ((offered, proposal.proposer_id), (requested, proposal.recipient_id)):
            if slot is None:
                raise IntegrityViolation(f"Proposal {proposal.id} references a missing slot.")
            if slot.status is not SlotStatus.PENDING_EXCHANGE:
                raise IntegrityViolation(
                    f"Slot {slot.id} of open proposal {proposal.id} is {slot.status.value}."
                )
            if slot.owner_id != expected_owner:
                raise IntegrityViolation(
                    f"Slot {slot.id} changed owner while proposal {proposal.id} was open."
                )

    async def find_pairing_violations(self) -> List[str]:
        """List every break of the PENDING_EXCHANGE <-> OPEN proposal pairing.

        An empty list means each pending slot is referenced by exactly one
        open proposal and every slot of an open proposal is pending.
        """
        open_proposals = await self.proposal_store.list_open()
        pending_ids = {s.id for s in await self.slot_store.list_by_status(SlotStatus.PENDING_EXCHANGE)}
        references = Counter(slot_id for p in open_proposals for slot_id in p.slot_ids)

        problems = []
        for slot_id in sorted(pending_ids):
            count = references.get(slot_id, 0)
            if count != 1:
                problems.append(f"slot {slot_id} is PENDING_EXCHANGE with {count} open proposals")
        for slot_id in sorted(set(references) - pending_ids):
            problems.append(f"slot {slot_id} is referenced by an open proposal but not PENDING_EXCHANGE")
        return problems
