"""Runtime configuration for the RSSHub MCP adapter.

Settings come from the process environment.  A ``.env`` file in the working
directory is loaded first (via ``python-dotenv``) so local overrides do not
need to be exported by hand.

* ``RSSHUB_INSTANCE`` – base URL of the RSSHub deployment.
* ``RSSHUB_MCP_DATA_DIR`` – directory holding ``subscriptions.json``.
* ``RSSHUB_MCP_LOG_LEVEL`` – log level name for the entry points.
* ``RSSHUB_MCP_HTTP_PORT`` – port used by the FastAPI server.
"""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

DEFAULT_INSTANCE = "https://rsshub.app"
DEFAULT_DATA_DIR = Path.home() / ".rsshub-mcp"
SUBSCRIPTIONS_FILENAME = "subscriptions.json"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DEFAULT_HTTP_PORT = 8090

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Settings:
    instance: str = DEFAULT_INSTANCE
    data_dir: Path = DEFAULT_DATA_DIR
    log_level: str = "INFO"
    http_port: int = DEFAULT_HTTP_PORT

    @property
    def subscriptions_path(self) -> Path:
        return self.data_dir / SUBSCRIPTIONS_FILENAME


def _parse_port(value: Optional[str]) -> int:
    if not value:
        return DEFAULT_HTTP_PORT
    try:
        return int(value)
    except ValueError:
        logger.warning(
            "Ignoring RSSHUB_MCP_HTTP_PORT=%r (not a number); using %d", value, DEFAULT_HTTP_PORT
        )
        return DEFAULT_HTTP_PORT


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Build ``Settings`` from *environ* (defaults to ``os.environ``).

    ``.env`` is only consulted when reading the real environment, so tests can
    pass a plain dict without picking up a developer's local file.
    """
    if environ is None:
        load_dotenv()
        environ = os.environ

    instance = (environ.get("RSSHUB_INSTANCE") or DEFAULT_INSTANCE).strip()
    data_dir = environ.get("RSSHUB_MCP_DATA_DIR")
    return Settings(
        instance=instance,
        data_dir=Path(data_dir).expanduser() if data_dir else DEFAULT_DATA_DIR,
        log_level=environ.get("RSSHUB_MCP_LOG_LEVEL", "INFO").upper(),
        http_port=_parse_port(environ.get("RSSHUB_MCP_HTTP_PORT")),
    )


def configure_logging(level: str = "INFO") -> None:
    """Send log records to stderr; stdout is reserved for the stdio transport."""
    logging.basicConfig(stream=sys.stderr, level=level, format=LOG_FORMAT)
