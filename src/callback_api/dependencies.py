"""
Dependencies for the Callback API

Builds the relay's components once per application and exposes them to
endpoints through FastAPI dependency injection.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from ..job_registry.database import DatabaseManager
from ..job_registry.repositories import JobRegistry
from ..shared.config import Settings
from ..webhooks.delivery import WebhookDeliveryService
from ..webhooks.metrics import WebhookMetrics, get_webhook_metrics
from ..webhooks.notifier import CompletionNotifier
from ..webhooks.replies import EmailReplyHandler
from ..webhooks.status_poller import AgentStatusClient, StatusPoller
from ..webhooks.verifier import CompletionHandler, InboundVerifier

logger = logging.getLogger(__name__)


@dataclass
class RelayServices:
    """Everything the endpoints need, wired from one Settings instance."""
    settings: Settings
    db_manager: DatabaseManager
    registry: JobRegistry
    delivery_service: WebhookDeliveryService
    notifier: CompletionNotifier
    verifier: InboundVerifier
    completion_handler: Optional[CompletionHandler]
    metrics: WebhookMetrics
    poller: Optional[StatusPoller] = None

    @classmethod
    def build(
        cls,
        settings: Settings,
        db_manager: Optional[DatabaseManager] = None,
        delivery_service: Optional[WebhookDeliveryService] = None,
        completion_handler: Optional[CompletionHandler] = None,
        metrics: Optional[WebhookMetrics] = None
    ) -> "RelayServices":
        metrics = metrics or get_webhook_metrics()
        db_manager = db_manager or DatabaseManager(settings.database)
        registry = JobRegistry(db_manager)
        delivery_service = delivery_service or WebhookDeliveryService(settings.delivery, metrics=metrics)
        notifier = CompletionNotifier(registry, delivery_service, metrics=metrics)
        verifier = InboundVerifier(registry, settings.security, metrics=metrics)

        if completion_handler is None:
            completion_handler = EmailReplyHandler(settings.inbound_email)

        poller = None
        if settings.agent_api.api_key and settings.agent_api.poll_interval_seconds > 0:
            poller = StatusPoller(AgentStatusClient(settings.agent_api), notifier)

        return cls(
            settings=settings,
            db_manager=db_manager,
            registry=registry,
            delivery_service=delivery_service,
            notifier=notifier,
            verifier=verifier,
            completion_handler=completion_handler,
            metrics=metrics,
            poller=poller,
        )


def get_services(request: Request) -> RelayServices:
    """Get the application's relay services."""
    return request.app.state.services


def get_registry(request: Request) -> JobRegistry:
    return get_services(request).registry


def get_notifier(request: Request) -> CompletionNotifier:
    return get_services(request).notifier


def get_verifier(request: Request) -> InboundVerifier:
    return get_services(request).verifier
