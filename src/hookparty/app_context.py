"""
Application context.

Every long-lived component is constructed once here and passed explicitly to
whoever needs it; nothing in the package relies on module-level state.
"""

from __future__ import annotations

from dataclasses import dataclass

import httpx

from hookparty.config.app import PartyConfig
from hookparty.delivery.input import InputDeliveryChannel
from hookparty.notifications.dispatcher import NotificationDispatcher
from hookparty.notifications.replies import ReplyRouter
from hookparty.sessions.registry import SessionRegistry
from hookparty.sessions.resolver import SessionResolver
from hookparty.utils.timers import Scheduler


@dataclass
class ServiceContainer:
    config: PartyConfig
    registry: SessionRegistry
    resolver: SessionResolver
    delivery: InputDeliveryChannel
    dispatcher: NotificationDispatcher
    router: ReplyRouter


def build_services(
    config: PartyConfig,
    scheduler: Scheduler | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ServiceContainer:
    """
    Wire up the registry, delivery channel and notification stack.

    Args:
        config: Loaded configuration
        scheduler: Timer scheduler for session eviction (defaults to threads)
        transport: Optional httpx transport shared by all HTTP clients
    """
    registry = SessionRegistry.from_config(config.sessions, scheduler=scheduler)
    resolver = SessionResolver(registry)
    delivery = InputDeliveryChannel.from_settings(config.input_delivery, transport=transport)
    dispatcher = NotificationDispatcher.from_settings(config.notifications, transport=transport)

    return ServiceContainer(
        config=config,
        registry=registry,
        resolver=resolver,
        delivery=delivery,
        dispatcher=dispatcher,
        router=ReplyRouter(resolver, delivery),
    )
