# =============================================================================
# app/dependencies.py - Shared Dependencies
# =============================================================================
# Services are built once per process (FastAPI lifespan or Celery worker) and
# handed to route handlers with Depends():
#
#   @router.get("/orders")
#   async def list_orders(services: ServicesDep, user: CurrentUser): ...
#
# Tests swap the whole container by setting app.state.services.
# =============================================================================

import logging
from dataclasses import dataclass
from typing import Annotated

import httpx
from fastapi import Depends
from fastapi.requests import HTTPConnection

from app.config import Settings
from app.websocket.broadcast import EventPublisher
from core.services import (
    ConversationService,
    DeliveryService,
    InstagramService,
    OrderService,
    PaymentService,
    StorageService,
    UserService,
    WaitlistService,
)
from lib.instagram import InstagramAPI
from lib.supabase_client import SupabaseStore

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Every service the API and the workers use, wired to one store."""

    settings: Settings
    store: SupabaseStore
    publisher: EventPublisher
    users: UserService
    orders: OrderService
    conversations: ConversationService
    storage: StorageService
    deliveries: DeliveryService
    waitlist: WaitlistService
    payments: PaymentService
    instagram: InstagramService
    http: httpx.AsyncClient | None = None
    instagram_http: httpx.Client | None = None

    async def aclose(self) -> None:
        """Close the HTTP clients created by build_services()."""
        if self.http is not None:
            await self.http.aclose()
        if self.instagram_http is not None:
            self.instagram_http.close()


def wire_services(
    settings: Settings,
    store: SupabaseStore,
    publisher: EventPublisher,
    storage: StorageService,
    instagram_api: InstagramAPI,
) -> Services:
    """Connect the domain services to already-built infrastructure."""
    users = UserService(store)
    orders = OrderService(store)
    conversations = ConversationService(store, users, orders, publisher)
    return Services(
        settings=settings,
        store=store,
        publisher=publisher,
        users=users,
        orders=orders,
        conversations=conversations,
        storage=storage,
        deliveries=DeliveryService(store, storage, orders, settings),
        waitlist=WaitlistService(store),
        payments=PaymentService(settings, conversations, orders),
        instagram=InstagramService(store, users, instagram_api, settings),
    )


def build_services(settings: Settings) -> Services:
    """
    Build the production service graph from settings.

    Raises:
        SupabaseClientError: If the Supabase client can't be created
    """
    store = SupabaseStore.from_settings(settings)
    http = httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS)
    instagram_http = httpx.Client(timeout=settings.HTTP_TIMEOUT_SECONDS)

    services = wire_services(
        settings,
        store,
        EventPublisher(settings.REDIS_URL),
        StorageService(settings, store.client, http),
        InstagramAPI(
            instagram_http,
            settings.INSTAGRAM_APP_ID,
            settings.INSTAGRAM_APP_SECRET,
            settings.INSTAGRAM_REDIRECT_URI,
        ),
    )
    services.http = http
    services.instagram_http = instagram_http
    logger.info("Services initialized")
    return services


def get_services(connection: HTTPConnection) -> Services:
    """The container stored on app.state during startup (HTTP and WebSocket)."""
    return connection.app.state.services


ServicesDep = Annotated[Services, Depends(get_services)]
