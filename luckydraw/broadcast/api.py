import os
import logging
from urllib.parse import urljoin
from dotenv import load_dotenv
from typing import Any, Mapping, Optional, Protocol

import requests

from .utils import open_session, realtime_settings, topic_for_event

logger = logging.getLogger(__name__)

BROADCAST_PATH = "/realtime/v1/api/broadcast"
DEFAULT_TIMEOUT = 5.0


class Publisher(Protocol):
    """Anything that can push a draw event to an event's viewers."""

    def publish(
        self, event_id: int, event_type: str, payload: Mapping[str, Any]
    ) -> bool: ...


class RealtimeClient:
    """Publishes draw events to a Supabase-style realtime broadcast endpoint.

    Publishing is best effort: a failed delivery is logged and reported as
    ``False`` but never raised, since winners are already committed by the
    time anything is broadcast.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        service_key: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        load_dotenv()
        env_url, env_key = realtime_settings()
        url = base_url or env_url
        if not url:
            raise ValueError("Environment variable 'SUPABASE_URL' is not set")
        key = service_key or env_key

        self.base_url = url.rstrip("/")
        self.session = session if session is not None else open_session(key or "")
        if timeout is None:
            timeout = float(os.getenv("REALTIME_TIMEOUT", DEFAULT_TIMEOUT))
        self.timeout = timeout

    # -------- core request --------
    def _request(self, method: str, path: str, *, json: Optional[dict] = None) -> Any:
        url = urljoin(self.base_url + "/", path.lstrip("/"))
        r = self.session.request(
            method=method.upper(),
            url=url,
            json=json,
            timeout=self.timeout,
        )
        r.raise_for_status()
        return r.json() if r.content else None

    # -------- publishing --------
    def broadcast(
        self, topic: str, event_type: str, payload: Mapping[str, Any]
    ) -> Any:
        return self._request(
            "POST",
            BROADCAST_PATH,
            json={
                "messages": [
                    {"topic": topic, "event": event_type, "payload": dict(payload)}
                ]
            },
        )

    def publish(
        self, event_id: int, event_type: str, payload: Mapping[str, Any]
    ) -> bool:
        topic = topic_for_event(event_id)
        try:
            self.broadcast(topic, event_type, payload)
        except (requests.RequestException, ValueError) as exc:
            logger.warning("Failed to broadcast %s to %s: %s", event_type, topic, exc)
            return False
        logger.debug("Broadcast %s to %s", event_type, topic)
        return True


class NullPublisher:
    """Publisher used when no realtime service is configured."""

    def __init__(self) -> None:
        self._warned = False

    def publish(
        self, event_id: int, event_type: str, payload: Mapping[str, Any]
    ) -> bool:
        if not self._warned:
            logger.info("Realtime broadcast is not configured; draw events are not pushed")
            self._warned = True
        return False


class RecordingPublisher:
    """Keeps published messages in memory, in publish order."""

    def __init__(self) -> None:
        self.messages: list[dict[str, Any]] = []

    def publish(
        self, event_id: int, event_type: str, payload: Mapping[str, Any]
    ) -> bool:
        self.messages.append(
            {
                "topic": topic_for_event(event_id),
                "event": event_type,
                "payload": dict(payload),
            }
        )
        return True

    def events(self) -> list[str]:
        return [message["event"] for message in self.messages]


def default_publisher() -> Publisher:
    """Return a :class:`RealtimeClient` when configured, else a :class:`NullPublisher`."""

    url, key = realtime_settings()
    if not url or not key:
        return NullPublisher()
    return RealtimeClient(base_url=url, service_key=key)


__all__ = [
    "BROADCAST_PATH",
    "NullPublisher",
    "Publisher",
    "RealtimeClient",
    "RecordingPublisher",
    "default_publisher",
]
