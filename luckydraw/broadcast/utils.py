import os
import logging
from typing import Optional

import requests
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# Ensure environment variables from .env are loaded when this module is imported.
load_dotenv()


def realtime_settings() -> tuple[Optional[str], Optional[str]]:
    """Read the realtime service location and key from the environment.

    Returns
    -------
    tuple[Optional[str], Optional[str]]
        ``SUPABASE_URL`` without a trailing slash and
        ``SUPABASE_SERVICE_ROLE_KEY``. Either is ``None`` when unset.
    """
    url = os.environ.get("SUPABASE_URL") or None
    key = os.environ.get("SUPABASE_SERVICE_ROLE_KEY") or None
    return (url.rstrip("/") if url else None), key


def open_session(service_key: str) -> requests.Session:
    """Open a requests session authenticated against the realtime service.

    Parameters
    ----------
    service_key : str
        Service role key sent both as ``apikey`` and as a bearer token.

    Raises
    ------
    RuntimeError
        If ``service_key`` is empty.
    """
    if not service_key:
        raise RuntimeError("Environment variable 'SUPABASE_SERVICE_ROLE_KEY' is not set")

    session = requests.Session()
    session.headers.update(
        {
            "apikey": service_key,
            "Authorization": f"Bearer {service_key}",
            "Content-Type": "application/json",
        }
    )
    # Never log the key itself
    logger.debug("Realtime session opened with service role credentials")
    return session


def topic_for_event(event_id: int) -> str:
    """Channel topic viewers of ``event_id`` subscribe to."""
    return f"event:{event_id}"


__all__ = ["open_session", "realtime_settings", "topic_for_event"]
