import logging
from datetime import UTC, datetime
from typing import Protocol

import httpx
import jinja2

from alarm_scheduler_engine import errors
from alarm_scheduler_engine.tools_time_units import format_alarm_time


class Notifier(Protocol):
    """The external collaborator that puts a notification in front of the user."""

    async def display(self, title: str, body: str) -> None: ...

    async def is_granted(self) -> bool: ...

    async def request(self) -> bool: ...


class WebhookNotifier:
    """Delivers notifications by POSTing them as JSON to a webhook."""

    def __init__(self, webhook_url: str | None, timeout: float = 10.0, logger: logging.Logger | None = None) -> None:
        self.webhook_url = webhook_url
        self.timeout = timeout
        self.logger = logger or logging.getLogger(__name__)

    async def display(self, title: str, body: str) -> None:
        if not self.webhook_url:
            raise errors.DeliveryError("No webhook URL configured.")
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    self.webhook_url,
                    json={"title": title, "body": body, "sent_at": datetime.now(UTC).isoformat()},
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise errors.DeliveryError(
                f"Webhook answered {exc.response.status_code}: {exc.response.text}"
            ) from exc
        except httpx.HTTPError as exc:
            raise errors.DeliveryError(f"Webhook request failed: {exc}") from exc
        self.logger.debug("Webhook notification sent for %r.", title)

    async def is_granted(self) -> bool:
        return bool(self.webhook_url)

    async def request(self) -> bool:
        # There is nobody to ask; a webhook is usable as soon as it is configured.
        return await self.is_granted()


def default_template_env() -> jinja2.Environment:
    env = jinja2.Environment(
        loader=jinja2.PackageLoader("alarm_scheduler_engine", "templates"),
        autoescape=False,
    )
    env.filters["alarm_time"] = format_alarm_time
    return env


class NotifierGateway:
    """Adapts a fire event to the notifier. Stateless and never retries."""

    def __init__(
        self,
        notifier: Notifier,
        template_env: jinja2.Environment | None = None,
        template_name: str = "notification_body.j2",
        logger: logging.Logger | None = None,
    ) -> None:
        self.notifier = notifier
        self.template_env = template_env or default_template_env()
        self.body_template = self.template_env.get_template(template_name)
        self.logger = logger or logging.getLogger(__name__)

    def render_body(self, title: str, scheduled_time: datetime) -> str:
        return self.body_template.render(title=title, scheduled_time=scheduled_time)

    async def deliver(self, title: str, body: str) -> None:
        try:
            await self.notifier.display(title, body)
        except errors.DeliveryError:
            raise
        except Exception as exc:
            raise errors.DeliveryError(f"Notifier raised {type(exc).__name__}: {exc}") from exc

    async def ensure_permission(self) -> None:
        """Raise ``PermissionDenied`` unless notifications may be displayed."""
        if await self.notifier.is_granted():
            return
        self.logger.info("Notification permission not granted, requesting it.")
        if not await self.notifier.request():
            raise errors.PermissionDenied("Permission to display notifications was denied.")
