"""Webhook client that forwards ledger events over HTTP."""

import logging

import httpx

from ..exceptions import DeliveryError
from ..models import Event

logger = logging.getLogger(__name__)


class WebhookPublisher:
    """Posts each event as JSON to a configured URL.

    Instances are callable so they can be subscribed to an ``EventBus``.
    """

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize the webhook client."""
        self.url = url
        self.client = httpx.Client(
            headers={"Content-Type": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    def close(self):
        """Close the HTTP client."""
        self.client.close()

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()

    def __call__(self, event: Event) -> None:
        """
        Deliver one event.

        Raises:
            DeliveryError: If the request fails or the endpoint rejects it
        """
        try:
            response = self.client.post(self.url, json=event.model_dump(mode="json"))
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise DeliveryError(
                f"Webhook delivery of {event.name} to {self.url} failed: {e}"
            ) from e

        logger.debug(f"Delivered {event.name} ({event.room}) to webhook")
