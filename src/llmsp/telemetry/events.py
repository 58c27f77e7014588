"""Anonymous usage events.

Each installation gets a random id, stored as the only content of a small
file. Events carry that id and are sent to the configured Sourcegraph
instance and, when that instance is not sourcegraph.com, to sourcegraph.com
as well. Sending is fire-and-forget: failures are logged and dropped.
"""

import asyncio
import json
import uuid
from pathlib import Path

import structlog

from llmsp import __version__
from llmsp.config import SOURCEGRAPH_DOTCOM_URL
from llmsp.errors import BackendError
from llmsp.sourcegraph import SourcegraphClient

logger = structlog.get_logger(__name__)

INSTALLED_EVENT = "CodyInstalled"


def read_anonymous_uid(path: Path) -> str | None:
    """Return the stored installation id, or None if there is none yet."""
    try:
        uid = path.read_text(encoding="utf-8").strip()
    except OSError:
        return None
    return uid or None


def write_anonymous_uid(path: Path, uid: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(uid, encoding="utf-8")


def load_or_create_uid(path: Path) -> tuple[str, bool]:
    """
    Read the installation id, creating and persisting one if missing.

    Returns:
        Tuple of (uid, is_new_install)
    """
    uid = read_anonymous_uid(path)
    if uid is not None:
        return uid, False

    uid = str(uuid.uuid4())
    try:
        write_anonymous_uid(path, uid)
    except OSError as e:
        # The id still works for this process, it just won't survive a restart
        logger.warning("telemetry.uid_not_persisted", path=str(path), error=str(e))
    return uid, True


def public_argument(server_url: str) -> str:
    return json.dumps({
        "extensionDetails": {"ide": "Neovim", "ideExtensionType": "Cody"},
        "serverEndpoint": server_url,
        "version": __version__,
    })


class EventLogger:
    """Sends named usage events in the background."""

    def __init__(
        self,
        server_client: SourcegraphClient,
        dotcom_client: SourcegraphClient | None,
        server_url: str,
        uid: str,
        enabled: bool = True,
    ) -> None:
        self._server_client = server_client
        self._dotcom_client = dotcom_client
        self.server_url = server_url
        self.uid = uid
        self.enabled = enabled
        self._argument = public_argument(server_url)
        self._pending: set[asyncio.Task[None]] = set()

    @classmethod
    def create(
        cls,
        server_client: SourcegraphClient,
        server_url: str,
        uid_path: Path,
        enabled: bool = True,
        timeout: float = 60.0,
    ) -> "EventLogger":
        """Build a logger, loading or creating the installation id."""
        if not enabled:
            return cls(server_client, None, server_url, uid="", enabled=False)

        uid, new_install = load_or_create_uid(uid_path)
        dotcom_client = None
        if server_url.rstrip("/") != SOURCEGRAPH_DOTCOM_URL:
            dotcom_client = SourcegraphClient(SOURCEGRAPH_DOTCOM_URL, timeout=timeout)
        event_logger = cls(server_client, dotcom_client, server_url, uid)
        if new_install:
            event_logger.log(INSTALLED_EVENT)
        return event_logger

    def log(self, event_name: str) -> None:
        """Schedule ``event_name`` for delivery without waiting for it."""
        if not self.enabled or not self.uid:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("telemetry.no_event_loop", event_name=event_name)
            return
        task = loop.create_task(self._send(event_name))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _send(self, event_name: str) -> None:
        clients = [self._server_client]
        if self._dotcom_client is not None:
            clients.append(self._dotcom_client)
        for client in clients:
            try:
                await client.log_event(event_name, self.uid, self._argument, self._argument)
            except BackendError as e:
                logger.debug(
                    "telemetry.event_failed",
                    event_name=event_name,
                    url=client.url,
                    error=str(e),
                )

    async def flush(self) -> None:
        """Wait for all scheduled events to be sent."""
        if self._pending:
            await asyncio.gather(*self._pending)

    async def aclose(self) -> None:
        await self.flush()
        if self._dotcom_client is not None:
            await self._dotcom_client.aclose()
