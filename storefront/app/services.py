"""
Service container for one storefront session.

Builds the single shared instances (backend client, session store,
identity context, cart, checkout) and owns their lifecycle.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable

import httpx

from shared.config.logging import storefront_logger as logger
from shared.config.settings import Settings
from shared.security.rate_limit import create_auth_limiters
from shared.utils.exceptions import ConfigError
from storefront.backend.client import BackendClient
from storefront.backend.storage import FileStorage, LocalStorage
from storefront.cart.engine import CartEngine
from storefront.checkout.orchestrator import CheckoutService
from storefront.identity.context import IdentityContext
from storefront.identity.guest import GuestStore
from storefront.identity.profiles import ProfileResolver
from storefront.session.refresher import SessionRefresher
from storefront.session.store import SessionStore


@dataclass
class StorefrontServices:
    settings: Settings
    storage: LocalStorage
    client: BackendClient
    sessions: SessionStore
    refresher: SessionRefresher
    profiles: ProfileResolver
    identity: IdentityContext
    cart: CartEngine
    checkout: CheckoutService

    @classmethod
    def create(
        cls,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
        storage: LocalStorage | None = None,
        clock: Callable[[], float] = time.time,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> "StorefrontServices":
        """
        Wire every service from settings.

        Raises:
            ConfigError: the backend URL/key or refresh policy is unusable.
        """
        problems = settings.validate_configuration()
        if problems:
            raise ConfigError(problems)

        if storage is None:
            storage = FileStorage(settings.local_storage_path)

        client = BackendClient(settings, storage=storage, transport=transport, clock=clock)
        sessions = SessionStore(client.auth, clock=clock)
        refresher = SessionRefresher(
            sessions,
            interval_seconds=settings.session_refresh_interval,
            threshold_seconds=settings.session_refresh_threshold,
        )
        profiles = ProfileResolver(client, settings.profiles_table)
        sign_in_limiter, sign_up_limiter = create_auth_limiters(settings, clock=monotonic)

        identity = IdentityContext(
            sessions,
            profiles,
            GuestStore(storage, settings.guest_storage_key),
            sign_in_limiter,
            sign_up_limiter,
            refresher=refresher,
            password_reset_redirect_url=settings.password_reset_redirect_url,
        )
        cart = CartEngine(storage, settings.cart_storage_key)
        checkout = CheckoutService(
            client,
            identity,
            cart,
            orders_table=settings.orders_table,
            order_items_table=settings.order_items_table,
            delivery_fee=settings.delivery_fee,
            allow_guest_checkout=settings.allow_guest_checkout,
        )

        return cls(
            settings=settings,
            storage=storage,
            client=client,
            sessions=sessions,
            refresher=refresher,
            profiles=profiles,
            identity=identity,
            cart=cart,
            checkout=checkout,
        )

    async def start(self) -> None:
        state = await self.identity.init()
        logger.info("Storefront services started", identity_mode=state.mode.value)

    async def close(self) -> None:
        await self.identity.teardown()
        self.sessions.close()
        await self.client.close()
        logger.info("Storefront services closed")
