"""
Main Application Entry Point

================================================================================
COLLABORATIVE DOCUMENTS - Access Control and Versioning Service
================================================================================

EXPLANATION FOR VIVA:
=====================
This is the entry point of the application. It:

1. Configures logging from LOG_LEVEL
2. Creates the FastAPI application and mounts the routes under /api
3. On startup: creates tables, registers and starts the three agents
4. On shutdown: stops the agents

Application Architecture Summary:
================================
┌─────────────────────────────────────────────────────────────────┐
│                     Client (Bearer JWT)                          │
└────────────────────────────┬────────────────────────────────────┘
                             │ HTTP REST
                             ▼
┌─────────────────────────────────────────────────────────────────┐
│   FastAPI: api/auth (Principal Resolver) + api/routes (Gateway)  │
└────────────────────────────┬────────────────────────────────────┘
                             ▼
┌─────────────────────────────────────────────────────────────────┐
│                      Message Broker                              │
└────────────────────────────┬────────────────────────────────────┘
     ┌───────────────────────┼───────────────────────┐
     ▼                       ▼                       ▼
┌────────────┐        ┌────────────┐        ┌────────────┐
│  Document  │        │  Sharing   │        │  Version   │
│  Editing   │        │   Agent    │        │  Control   │
│   Agent    │        │            │        │   Agent    │
└─────┬──────┘        └─────┬──────┘        └─────┬──────┘
      │   Access Evaluator / Share Registry /     │
      │   Version Ledger / Diff Engine (models)   │
      └─────────────────────┬─────────────────────┘
                            ▼
                   ┌─────────────────┐
                   │  DocumentStore  │──► EventBus (committed changes)
                   │ (SQLAlchemy)    │
                   └─────────────────┘
"""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from core.errors import ErrorCode
from core.event_bus import Event, EventBus
from core.message_broker import MessageBroker
from agents.document_agent import DocumentEditingAgent
from agents.sharing_agent import SharingAgent
from agents.version_agent import VersionControlAgent
from api.routes import router
from models.database import init_db
from models.store import DocumentStore

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

logging.basicConfig(
    level=LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("audit")


def create_agents(store: DocumentStore = None):
    """The three agents sharing one store."""
    store = store or DocumentStore()
    return [
        DocumentEditingAgent(store),
        SharingAgent(store),
        VersionControlAgent(store),
    ]


def log_event(event: Event):
    """Audit trail: one line per committed change."""
    audit_logger.info(
        f"{event.event_type.value} document={event.document_id} actor={event.actor} data={event.data}"
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    EXPLANATION FOR VIVA:
    ====================
    Code before `yield` runs at startup, code after it at shutdown.

    Startup:
    1. Create tables (idempotent)
    2. Register agents with the broker and start their inbox loops
    3. Attach the audit logger to the event bus

    Shutdown:
    1. Stop every agent
    2. Detach the audit logger
    """
    logger.info("Starting collaborative documents service...")

    await init_db()

    broker = MessageBroker()
    for agent in create_agents():
        broker.register_agent(agent)
    await broker.start_all_agents()

    unsubscribe_audit = EventBus().subscribe_all(log_event)

    logger.info("Service is ready")

    yield

    logger.info("Shutting down...")
    unsubscribe_audit()
    await broker.stop_all_agents()
    logger.info("Shutdown complete.")


app = FastAPI(
    title="Collaborative Documents",
    description="""
    Access control and version history for collaborative documents.

    ## Features
    - Documents: create, read, update, delete, search
    - Sharing: view/edit access by email, mentions
    - Versions: full history and comparison of any two versions
    """,
    version="1.0.0",
    lifespan=lifespan
)

allowed_origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:3000,http://localhost:8000").split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """
    Malformed bodies (bad email, wrong types) are plain 400s.

    The body has the same shape as an agent error so clients parse one format.
    """
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = f"{field}: {first.get('msg')}" if field else first.get("msg", "Invalid request")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "success": False,
            "error": message,
            "error_code": ErrorCode.INVALID_INPUT.value,
        }
    )


app.include_router(router, prefix="/api")


@app.get("/")
async def root():
    return {"message": "Collaborative Documents API", "docs": "/docs"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        reload=True,
        log_level=LOG_LEVEL.lower()
    )
