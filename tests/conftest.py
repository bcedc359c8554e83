"""Shared fixtures: a throwaway SQLite database per test and the engine wired to it."""

import asyncio
import os
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

# The app module reads these at import time
_TMP = tempfile.mkdtemp(prefix="slot_swap_tests_")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{Path(_TMP) / 'api.db'}")
os.environ.setdefault("SECRET_KEY", "test-secret")

import pytest
from databases import Database
from sqlalchemy import create_engine

from slot_swap.data_models import SlotStatus
from slot_swap.database import metadata, single_writer
from slot_swap.locks import SlotLockRegistry
from slot_swap.models import users
from slot_swap.negotiation import SwapNegotiationEngine
from slot_swap.proposals import ProposalStore
from slot_swap.slots import SlotStore

BASE_TIME = datetime(2030, 3, 4, 9, 0, tzinfo=timezone.utc)


class Services:
    def __init__(self, db: Database):
        self.db = db
        self.locks = SlotLockRegistry(serialize_writers=single_writer(db))
        self.proposals = ProposalStore(db)
        self.slots = SlotStore(db, self.proposals, self.locks)
        self.engine = SwapNegotiationEngine(db, self.slots, self.proposals, self.locks)

    async def add_user(self, name: str) -> int:
        return await self.db.execute(
            users.insert().values(
                name=name,
                email=f"{name.lower()}@example.com",
                hashed_password="x",
                created_at=BASE_TIME,
            )
        )

    async def add_slot(self, owner_id: int, title: str, hour: int = 0,
                       status: SlotStatus = SlotStatus.EXCHANGEABLE):
        start = BASE_TIME + timedelta(hours=hour)
        return await self.slots.create(owner_id, title, start, start + timedelta(hours=1), status)


@pytest.fixture
def db_url(tmp_path):
    url = f"sqlite:///{tmp_path / 'swap.db'}"
    sync_engine = create_engine(url)
    metadata.create_all(bind=sync_engine)
    sync_engine.dispose()
    return url


@pytest.fixture
def run_with_services(db_url):
    """Run ``scenario(services)`` on a fresh event loop against the test database."""

    def runner(scenario):
        async def main():
            db = Database(db_url)
            await db.connect()
            try:
                return await scenario(Services(db))
            finally:
                await db.disconnect()

        return asyncio.run(main())

    return runner
