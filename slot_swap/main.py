# main.py
import json
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import List, Optional

import fastapi
from fastapi import Depends, HTTPException, Query, Request, Response, status
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordRequestForm
from pydantic import BaseModel, Field

from slot_swap.auth import (
    LoginRequest,
    Token,
    User,
    UserCreate,
    authenticate_user,
    create_access_token,
    create_user,
    get_current_active_user,
    get_user,
)
from slot_swap.config import LOG_LEVEL
from slot_swap.data_models import SlotStatus
from slot_swap.database import database, engine, metadata, single_writer
from slot_swap.errors import SwapError
from slot_swap.locks import SlotLockRegistry
from slot_swap.negotiation import SwapNegotiationEngine
from slot_swap.proposals import ProposalStore
from slot_swap.slots import SlotStore
from slot_swap.views import slot_to_dict

# Configure logging
logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

slot_locks = SlotLockRegistry(serialize_writers=single_writer(database))
proposal_store = ProposalStore(database)
slot_store = SlotStore(database, proposal_store, slot_locks)
swap_engine = SwapNegotiationEngine(database, slot_store, proposal_store, slot_locks)


@asynccontextmanager
async def lifespan(app: fastapi.FastAPI):
    await database.connect()
    # Create tables if they don't exist
    metadata.create_all(bind=engine)

    problems = await swap_engine.find_pairing_violations()
    for problem in problems:
        logger.error(f"Data integrity: {problem}")
    logger.info("Slot Swap API started")
    yield
    await database.disconnect()
    logger.info("Slot Swap API stopped")


#FastAPI Setup
app = fastapi.FastAPI(title="Slot Swap API", lifespan=lifespan)


class ConnectionManager:
    def __init__(self):
        self.active_connections: List[fastapi.WebSocket] = []

    async def connect(self, websocket: fastapi.WebSocket):
        await websocket.accept()
        self.active_connections.append(websocket)

    def disconnect(self, websocket: fastapi.WebSocket):
        if websocket in self.active_connections:
            self.active_connections.remove(websocket)

    async def broadcast(self, message: str):
        for connection in list(self.active_connections):
            try:
                await connection.send_text(message)
            except (RuntimeError, fastapi.WebSocketDisconnect):
                logger.info("Dropping closed websocket connection")
                self.disconnect(connection)

manager = ConnectionManager()


@app.exception_handler(SwapError)
async def swap_error_handler(request: Request, exc: SwapError):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail, "code": exc.code})


#  Request bodies
class SlotCreate(BaseModel):
    title: str = Field(min_length=1)
    start_time: datetime
    end_time: datetime
    status: Optional[SlotStatus] = None

class SlotUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1)
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    status: Optional[SlotStatus] = None

class SwapRequestCreate(BaseModel):
    my_slot_id: int = Field(gt=0)
    their_slot_id: int = Field(gt=0)

class SwapResponse(BaseModel):
    accepted: bool


@app.get("/health")
async def health():
    return {"status": "ok"}


# Identity endpoints
@app.post("/api/auth/signup", status_code=status.HTTP_201_CREATED)
async def signup(user: UserCreate):
    if await get_user(user.email):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="User already exists.")
    created = await create_user(user)
    logger.info(f"User {created.id} signed up")
    return {"user": created, "token": create_access_token(data={"sub": created.email})}

@app.post("/api/auth/login")
async def login(credentials: LoginRequest):
    user = await authenticate_user(credentials.email, credentials.password)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    return {"user": user, "token": create_access_token(data={"sub": user.email})}

# OAuth2 form login, username carries the email
@app.post("/token", response_model=Token)
async def login_for_access_token(form_data: OAuth2PasswordRequestForm = Depends()):
    user = await authenticate_user(form_data.username, form_data.password)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return {"access_token": create_access_token(data={"sub": user.email}), "token_type": "bearer"}

@app.get("/api/users/me", response_model=User)
async def read_users_me(current_user: User = Depends(get_current_active_user)):
    """
    Get the current authenticated user's profile data.
    """
    return current_user


# Calendar slot endpoints
@app.get("/api/events")
async def list_events(current_user: User = Depends(get_current_active_user)):
    return [slot_to_dict(s) for s in await slot_store.list_for_owner(current_user.id)]

@app.get("/api/events/{slot_id}")
async def get_event(slot_id: int, current_user: User = Depends(get_current_active_user)):
    return slot_to_dict(await slot_store.get_owned(current_user.id, slot_id))

@app.post("/api/events", status_code=status.HTTP_201_CREATED)
async def create_event(slot: SlotCreate, current_user: User = Depends(get_current_active_user)):
    created = await slot_store.create(
        owner_id=current_user.id,
        title=slot.title,
        start_time=slot.start_time,
        end_time=slot.end_time,
        status=slot.status or SlotStatus.ORDINARY,
    )
    if created.status is SlotStatus.EXCHANGEABLE:
        await manager.broadcast(json.dumps({"type": "slots_updated"}))
    return slot_to_dict(created)

@app.put("/api/events/{slot_id}")
async def update_event(slot_id: int, slot: SlotUpdate, current_user: User = Depends(get_current_active_user)):
    updated = await slot_store.update(current_user.id, slot_id, **slot.model_dump(exclude_unset=True))
    await manager.broadcast(json.dumps({"type": "slots_updated"}))
    return slot_to_dict(updated)

@app.delete("/api/events/{slot_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_event(slot_id: int, current_user: User = Depends(get_current_active_user)):
    await slot_store.delete(current_user.id, slot_id)
    await manager.broadcast(json.dumps({"type": "slots_updated"}))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Swap endpoints
@app.get("/api/swappable-slots")
async def list_swappable_slots(current_user: User = Depends(get_current_active_user)):
    """All exchangeable slots owned by other users."""
    return await swap_engine.list_exchangeable_slots(current_user.id)

@app.post("/api/swap-request", status_code=status.HTTP_201_CREATED)
async def create_swap_request(body: SwapRequestCreate, current_user: User = Depends(get_current_active_user)):
    proposal = await swap_engine.create_proposal(current_user.id, body.my_slot_id, body.their_slot_id)
    await manager.broadcast(json.dumps({"type": "proposals_updated", "data": {"proposal_id": proposal["id"], "status": proposal["status"]}}))
    return proposal

@app.post("/api/swap-response/{proposal_id}")
async def respond_to_swap_request(proposal_id: int, body: SwapResponse, current_user: User = Depends(get_current_active_user)):
    proposal = await swap_engine.resolve_proposal(current_user.id, proposal_id, body.accepted)
    await manager.broadcast(json.dumps({"type": "proposals_updated", "data": {"proposal_id": proposal["id"], "status": proposal["status"]}}))
    return proposal

@app.get("/api/swap-requests")
async def list_swap_requests(current_user: User = Depends(get_current_active_user)):
    """Incoming and outgoing swap requests for the current user, newest first."""
    return await swap_engine.list_proposals(current_user.id)


@app.websocket("/ws")
async def websocket_endpoint(websocket: fastapi.WebSocket, token: str = Query(None)):
    """
    Pushes proposals_updated / slots_updated notices to authenticated clients.
    """
    if token is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    try:
        current_user = await get_current_active_user(token)
    except HTTPException:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await manager.connect(websocket)
    await websocket.send_text(json.dumps({
        "type": "auth_success",
        "data": {"id": current_user.id, "name": current_user.name, "email": current_user.email}
    }))

    try:
        while True:
            # Clients only listen; incoming frames keep the connection alive
            await websocket.receive_text()
    except fastapi.WebSocketDisconnect:
        manager.disconnect(websocket)


