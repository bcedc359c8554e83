# eligibility.py
from typing import Optional

from slot_swap.data_models import Slot, SlotStatus
from slot_swap.errors import (
    OwnershipMismatch,
    ProposalConflict,
    SelfSwap,
    SlotNotExchangeable,
    SlotNotFound,
)


def _check_exchangeable(slot: Slot, label: str):
    if slot.status is SlotStatus.EXCHANGEABLE:
        return
    if slot.status is SlotStatus.PENDING_EXCHANGE:
        # A pending slot is already claimed by an open proposal
        raise ProposalConflict(f"{label} is already involved in a pending swap.")
    if slot.status is SlotStatus.ORDINARY:
        raise SlotNotExchangeable(f"{label} is not marked as swappable.")
    raise AssertionError(f"Unhandled slot status: {slot.status!r}")


def check_eligibility(offered: Optional[Slot], requested: Optional[Slot], proposer_id: int):
    """Decide whether ``offered`` may be traded for ``requested`` by ``proposer_id``.

    Checks run in a fixed order and the first failure is raised:

    1. both slots exist
    2. the offered slot belongs to the proposer
    3. the requested slot is a different slot owned by someone else
    4. the offered slot is exchangeable
    5. the requested slot is exchangeable

    Nothing is read or written here; callers pass in slots they already loaded.
    """
    if offered is None:
        raise SlotNotFound("Your slot was not found.")
    if requested is None:
        raise SlotNotFound("Requested slot not found.")

    if offered.owner_id != proposer_id:
        raise OwnershipMismatch("You can only offer a slot you own.")

    if offered.id == requested.id or requested.owner_id == proposer_id:
        raise SelfSwap("Cannot swap with your own slot.")

    _check_exchangeable(offered, "Your slot")
    _check_exchangeable(requested, "Requested slot")
