# database.py
import logging
from contextlib import asynccontextmanager

from databases import Database
from sqlalchemy import create_engine, MetaData

from slot_swap.config import DATABASE_URL
from slot_swap.errors import InfrastructureError, SwapError
from slot_swap.locks import SlotLockRegistry

logger = logging.getLogger(__name__)

# Create the core database objects
database = Database(DATABASE_URL)
metadata = MetaData()
engine = create_engine(DATABASE_URL)


def single_writer(db: Database) -> bool:
    """SQLite refuses a second concurrent write transaction instead of waiting."""
    return db.url.dialect == "sqlite"


@asynccontextmanager
async def store_errors(action: str):
    """Report anything the store raises as an InfrastructureError.

    Domain errors pass through unchanged.
    """
    try:
        yield
    except SwapError:
        raise
    except Exception as e:
        logger.exception(f"{action} failed")
        raise InfrastructureError("The operation could not be completed. Please retry.") from e


@asynccontextmanager
async def unit_of_work(db: Database, locks: SlotLockRegistry, *slot_ids: int):
    """Hold the slot locks and one transaction for the duration of the block.

    The transaction rolls back on any error; store failures surface as
    InfrastructureError so the caller can retry.
    """
    async with locks.hold(*slot_ids):
        async with store_errors(f"Transaction on slots {sorted(set(slot_ids))}"):
            async with db.transaction():
                yield
