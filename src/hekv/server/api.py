"""
FastAPI server exposing the encrypted key-value store commands.

Endpoints:
- GET  /health  - Store status
- POST /context - SET-PUBLIC-CONTEXT (FHE context + public key)
- POST /entries - SET-ENTRY (one encrypted row)
- POST /lookup  - LOOKUP (encrypted query -> encrypted result)
"""
import binascii
import logging
from contextlib import asynccontextmanager
from typing import Optional

import redis
from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from hekv.server.store import InMemoryStore, KeyValueStore, LookupService, RedisStore
from hekv.shared.errors import ContextNotSetError, KeyMaterialError, StaleEntryError, StoreError
from hekv.shared.utils import Metrics, from_b64, to_b64

logger = logging.getLogger(__name__)


# Pydantic models for API
class ContextRequest(BaseModel):
    """Request to store the FHE context and public key."""
    context_b64: str = Field(..., description="Base64-encoded serialized context")
    public_key_b64: str = Field(..., description="Base64-encoded public and evaluation keys")


class EntryRequest(BaseModel):
    """Request to store one encrypted table row."""
    key_b64: str = Field(..., description="Base64-encoded key ciphertext")
    value_b64: str = Field(..., description="Base64-encoded value ciphertext")


class LookupRequest(BaseModel):
    """Request for an encrypted lookup."""
    query_b64: str = Field(..., description="Base64-encoded query ciphertext")


class LookupResponse(BaseModel):
    """Response with the encrypted result."""
    result_b64: str = Field(..., description="Base64-encoded result ciphertext")
    server_time_ms: float
    num_entries: int


class StatusResponse(BaseModel):
    status: str


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    num_entries: int
    context_set: bool


# Server state
class ServerState:
    """Server state container."""
    def __init__(self):
        self.service: Optional[LookupService] = None


state = ServerState()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize server on startup."""
    if state.service is None:
        logger.info("Initializing server with in-memory store...")
        state.service = LookupService(InMemoryStore())
    yield
    logger.info("Server shutting down...")


app = FastAPI(
    title="hekv",
    description="Privacy-preserving exact-match key/value lookup API",
    version="0.1.0",
    lifespan=lifespan,
)


def _service() -> LookupService:
    if state.service is None:
        raise HTTPException(status_code=500, detail="Server not initialized")
    return state.service


def _decode(field_name: str, value: str) -> bytes:
    try:
        return from_b64(value)
    except (binascii.Error, ValueError) as e:
        raise HTTPException(status_code=400, detail=f"Invalid base64 in {field_name}: {e}")


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    service = _service()
    try:
        return HealthResponse(
            status="healthy",
            num_entries=service.entry_count(),
            context_set=service.has_context(),
        )
    except (redis.RedisError, StoreError) as e:
        raise HTTPException(status_code=503, detail=str(e))


@app.post("/context", response_model=StatusResponse)
async def set_public_context(request: ContextRequest):
    """Store the FHE context and public key under the reserved keys."""
    service = _service()
    context = _decode("context_b64", request.context_b64)
    public_key = _decode("public_key_b64", request.public_key_b64)
    try:
        return StatusResponse(status=service.set_public_context(context, public_key))
    except KeyMaterialError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except (redis.RedisError, StoreError) as e:
        raise HTTPException(status_code=503, detail=str(e))


@app.post("/entries", response_model=StatusResponse)
async def set_entry(request: EntryRequest):
    """Store one encrypted row."""
    service = _service()
    key = _decode("key_b64", request.key_b64)
    value = _decode("value_b64", request.value_b64)
    try:
        return StatusResponse(status=service.set_entry(key, value))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except (redis.RedisError, StoreError) as e:
        raise HTTPException(status_code=503, detail=str(e))


@app.post("/lookup", response_model=LookupResponse)
def lookup(request: LookupRequest):
    """
    Perform an encrypted lookup.

    The server computes over every stored row and learns neither the
    query nor which row matched.
    """
    service = _service()
    query = _decode("query_b64", request.query_b64)
    metrics = Metrics()
    try:
        result = service.lookup(query, metrics=metrics)
        num_entries = metrics.counters.get("entries_scanned", 0)
    except ContextNotSetError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except StaleEntryError as e:
        raise HTTPException(status_code=409, detail=f"Stored table does not match the public context: {e}")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"Failed to deserialize ciphertext: {e}")
    except (redis.RedisError, StoreError) as e:
        raise HTTPException(status_code=503, detail=str(e))

    return LookupResponse(
        result_b64=to_b64(result),
        server_time_ms=metrics.timings.get("server_lookup", 0.0),
        num_entries=num_entries,
    )


def create_app(store: Optional[KeyValueStore] = None, workers: int = 1) -> FastAPI:
    """
    Create and configure the FastAPI app.

    For programmatic use in tests and demos.
    """
    state.service = LookupService(store if store is not None else InMemoryStore(), workers=workers)
    return app


def run_server(
    host: str = "127.0.0.1",
    port: int = 8000,
    redis_url: Optional[str] = None,
    workers: int = 1,
):
    """Run the server directly, backed by Redis when a URL is given."""
    import uvicorn

    store = RedisStore(url=redis_url) if redis_url else None
    uvicorn.run(create_app(store, workers=workers), host=host, port=port)


if __name__ == "__main__":
    run_server()
