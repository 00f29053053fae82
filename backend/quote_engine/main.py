"""
Quote Engine - FastAPI Application

Main entry point for the quote negotiation backend.

Architecture:
- Content Policy Detector: free text -> findings (pure, no I/O)
- Compliance Ledger: per-user violation count, escalating to suspension
- Quote Negotiation: explicit state machine, every mutation policy-gated
- Discussion Thread: append-only comments, policy-gated the same way
- Events: audit comments and notifications dispatched after commit
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__, config
from .routers import quotes_router, compliance_router, admin_router, payments_router
from .database import init_db

logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database on startup."""
    init_db()
    logger.info(
        f"Quote Engine {__version__} started (suspension threshold "
        f"{config.VIOLATION_SUSPENSION_THRESHOLD})"
    )
    yield

# Create FastAPI app
app = FastAPI(
    lifespan=lifespan,
    title="Quote Engine",
    description="""
    Quote Engine - Negotiation and Contact Policy Enforcement

    Customers request quotes from agents and negotiate a price before
    paying through the platform. Until a job is paid for, neither side may
    share contact details; attempts are blocked and repeated attempts
    suspend the account.

    ## Negotiation
    pending -> negotiating <-> negotiating -> payment_pending -> completed,
    with side exits rejected, dismissed_by_customer and archived.
    Agents can also hide a request from their own list.

    ## Key Principles
    - At most one offer is active at a time
    - Accept is idempotent; the first accept fixes the price
    - Suspended users keep read access but cannot act
    - Notifications never undo a committed transition
    """,
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(quotes_router)
app.include_router(compliance_router)
app.include_router(admin_router)
app.include_router(payments_router)


@app.get("/")
async def root():
    """Root endpoint - API information."""
    return {
        "name": "Quote Engine",
        "version": __version__,
        "description": "Quote negotiation with contact policy enforcement",
        "docs": "/docs",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": __version__}


# For running with: python -m quote_engine.main
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)
