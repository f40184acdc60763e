# =============================================================================
# app/main.py - FastAPI Application Entry Point
# =============================================================================
# This is the main entry point for the Lumo marketplace API.
# It configures the FastAPI application with middleware, routers, and handlers.
#
# Usage:
#   uvicorn app.main:app --reload
# =============================================================================

import asyncio
import json
import logging
from contextlib import asynccontextmanager

import redis.asyncio as aioredis
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.dependencies import build_services
from app.exceptions import (
    LumoException,
    database_exception_handler,
    lumo_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from app.routers import conversations, health, instagram, intake, orders, payments, users
from app.auth import routes as auth_routes
from app.websocket import WEBSOCKET_CHANNEL, websocket_manager
from app.websocket import routes as websocket_routes
from lib.supabase_client import SupabaseClientError

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


async def redis_pubsub_listener(redis_url: str) -> None:
    """
    Relay events published on Redis to the WebSocket clients of this process.

    Services (here or in Celery workers) publish with EventPublisher; every
    API process subscribes and broadcasts to its own sockets.
    """
    client = aioredis.from_url(redis_url)
    pubsub = client.pubsub()
    logger.info("Starting Redis pub/sub listener for WebSocket broadcasts")

    try:
        await pubsub.subscribe(WEBSOCKET_CHANNEL)
        async for message in pubsub.listen():
            if message["type"] != "message":
                continue
            try:
                event = json.loads(message["data"])
            except json.JSONDecodeError as e:
                logger.warning(f"Invalid JSON in Redis message: {e}")
                continue

            conversation_id = event.pop("conversation_id", None)
            if conversation_id:
                await websocket_manager.broadcast(conversation_id, event)
    except asyncio.CancelledError:
        logger.info("Redis pub/sub listener cancelled")
        raise
    except aioredis.RedisError as e:
        logger.error(f"Redis pub/sub listener stopped: {e}")
    finally:
        await pubsub.aclose()
        await client.aclose()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    - Startup: build the services and start the pub/sub relay
    - Shutdown: stop the relay and close HTTP clients
    """
    logger.info(f"Starting Lumo API in {settings.ENVIRONMENT} mode")
    logger.info(f"CORS origins: {settings.cors_origins_list}")

    services = getattr(app.state, "services", None)
    if services is None:
        services = build_services(settings)
        app.state.services = services

    listener = asyncio.create_task(redis_pubsub_listener(settings.REDIS_URL))

    yield

    logger.info("Shutting down Lumo API")
    listener.cancel()
    try:
        await listener
    except asyncio.CancelledError:
        pass
    await services.aclose()


# Create FastAPI application
app = FastAPI(
    title="Lumo API",
    description="""
## Creator / Brand Marketplace API

Lumo connects travel content creators with brands.

### Flow

1. **Profile** - Sign up with Supabase Auth, then set up a brand or creator profile
2. **Message** - A brand opens a conversation with a creator
3. **Offer** - The brand offers a paid collaboration on one of the creator's trips
4. **Pay** - The creator accepts; the brand pays through Stripe Checkout
5. **Deliver** - The creator uploads the content; the brand completes the order

Landing-page waitlist forms post to `/api/waitlist/*`.
""",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
    openapi_tags=[
        {"name": "Auth", "description": "Verify Supabase JWTs"},
        {"name": "Users", "description": "Profile setup and public profiles"},
        {"name": "Conversations", "description": "Messages and offers between brands and creators"},
        {"name": "Orders", "description": "Order lifecycle, stats and deliveries"},
        {"name": "Payments", "description": "Stripe checkout and webhook"},
        {"name": "Instagram", "description": "Instagram connection, media and posts"},
        {"name": "Intake", "description": "Landing-page waitlist and signups"},
        {"name": "WebSocket", "description": "Real-time conversation updates"},
        {"name": "Health", "description": "API health and readiness checks"},
    ],
)


# =============================================================================
# Middleware
# =============================================================================

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list if settings.is_production else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# Exception Handlers
# =============================================================================

app.add_exception_handler(LumoException, lumo_exception_handler)
app.add_exception_handler(SupabaseClientError, database_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)


# =============================================================================
# Routers
# =============================================================================

app.include_router(auth_routes.router, prefix="/api/v1/auth", tags=["Auth"])
app.include_router(health.router, prefix="/api/v1", tags=["Health"])
app.include_router(users.router, prefix="/api/v1/users", tags=["Users"])
app.include_router(conversations.router, prefix="/api/v1/conversations", tags=["Conversations"])
app.include_router(orders.router, prefix="/api/v1/orders", tags=["Orders"])
app.include_router(payments.router, prefix="/api/v1/payments", tags=["Payments"])
app.include_router(instagram.router, prefix="/api/v1/instagram", tags=["Instagram"])
app.include_router(instagram.callback_router, prefix="/api/auth", tags=["Instagram"])
app.include_router(intake.router, prefix="/api", tags=["Intake"])
app.include_router(websocket_routes.router, tags=["WebSocket"])


# =============================================================================
# Root Endpoint
# =============================================================================

@app.get("/", tags=["Root"])
async def root():
    return {
        "name": "Lumo API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/api/v1/health",
    }
