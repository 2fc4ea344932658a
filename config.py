"""
Runtime settings for the Interview Tracker engine.

Values come from the environment, after loading the ``.env`` file that sits
next to this module.
"""
import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from state import Role

load_dotenv(Path(__file__).parent / ".env")

DEFAULT_API_URL = "http://localhost:5001/api"


class TrackerSettings(BaseModel):
    api_url: str = DEFAULT_API_URL
    socket_url: Optional[str] = None
    token: str = ""
    user_id: int = 0
    role: Role = Role.GRADUATE
    http_timeout: float = Field(default=15.0, gt=0)
    reconnect_delay: float = Field(default=2.0, ge=0)
    backlog_limit: int = Field(default=500, ge=1)
    log_level: str = "INFO"

    @property
    def resolved_socket_url(self) -> str:
        """Push channel URL; defaults to the API host with a ws scheme."""
        if self.socket_url:
            return self.socket_url
        url = self.api_url.rstrip("/")
        if url.endswith("/api"):
            url = url[: -len("/api")]
        if url.startswith("https://"):
            return "wss://" + url[len("https://"):]
        if url.startswith("http://"):
            return "ws://" + url[len("http://"):]
        return url


def load_settings() -> TrackerSettings:
    """Build settings from TRACKER_* environment variables."""
    env = os.environ
    values = {
        "api_url": env.get("TRACKER_API_URL"),
        "socket_url": env.get("TRACKER_SOCKET_URL"),
        "token": env.get("TRACKER_TOKEN"),
        "user_id": env.get("TRACKER_USER_ID"),
        "role": env.get("TRACKER_ROLE"),
        "http_timeout": env.get("TRACKER_HTTP_TIMEOUT"),
        "reconnect_delay": env.get("TRACKER_RECONNECT_DELAY"),
        "backlog_limit": env.get("TRACKER_BACKLOG_LIMIT"),
        "log_level": env.get("TRACKER_LOG_LEVEL"),
    }
    return TrackerSettings(**{k: v for k, v in values.items() if v not in (None, "")})


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
