"""Primary/backup replication.

A primary mirrors operator commands to every configured backup and polls each
backup's `/status` to report reachability. Each backup is contacted on its own
task with its own timeout, so an unreachable machine never delays the others
or the primary's response. Backups and standalone instances replicate nothing.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Set

import httpx

from shared.models import BackupState, BackupStatusEntry, ReplicationMode

from .preferences import Preferences, PreferencesStore

logger = logging.getLogger(__name__)

REPLICATION_TIMEOUT = 2.0
HEALTH_POLL_INTERVAL = 5.0
HEALTH_PATH = "/status"

# Canonical routes mirrored to backups. Reload is absent on purpose: it recovers a
# single machine and must not disturb machines that are presenting correctly.
REPLICATED_PATHS = frozenset(
    {
        "/open",
        "/open-with-notes",
        "/open-preset",
        "/close",
        "/next",
        "/previous",
        "/go-to-slide",
        "/toggle-video",
        "/notes/open",
        "/notes/close",
        "/notes/scroll-up",
        "/notes/scroll-down",
        "/notes/zoom-in",
        "/notes/zoom-out",
    }
)


def backup_base_url(ip: str, port: int) -> str:
    host = f"[{ip}]" if ":" in ip and not ip.startswith("[") else ip
    return f"http://{host}:{port}"


class ReplicationManager:
    """Fire-and-forget command fan-out plus a constant-interval health poll."""

    def __init__(
        self,
        preferences: PreferencesStore,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = REPLICATION_TIMEOUT,
        poll_interval: float = HEALTH_POLL_INTERVAL,
    ) -> None:
        self.preferences = preferences
        self._transport = transport
        self._timeout = timeout
        self._poll_interval = poll_interval
        self._statuses: Dict[str, BackupState] = {}
        self._tasks: Set["asyncio.Task[Any]"] = set()
        self._poller: Optional["asyncio.Task[None]"] = None

    # Configuration -------------------------------------------------------------

    def _primary_targets(self, prefs: Optional[Preferences] = None) -> List[str]:
        prefs = prefs or self.preferences.load()
        if prefs.mode != ReplicationMode.PRIMARY:
            return []
        return list(prefs.backup_ips)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport, timeout=httpx.Timeout(self._timeout))

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        # httpx timeouts are per phase; the caller bounds the whole exchange
        async with self._client() as client:
            return await client.request(method, url, **kwargs)

    # Command fan-out ------------------------------------------------------------

    def forward(self, path: str, payload: Optional[Dict[str, Any]] = None) -> int:
        """Schedule `path` on every backup. Returns the number of requests scheduled.

        Must be called from a running event loop; it never waits for the backups.
        """
        if path not in REPLICATED_PATHS:
            logger.debug(f"[Replication] {path} is not replicated")
            return 0

        prefs = self.preferences.load()
        targets = self._primary_targets(prefs)
        if not targets:
            return 0

        port = prefs.replication_port
        logger.debug(f"[Replication] Broadcasting {path} to {len(targets)} backup(s)")
        for ip in targets:
            task = asyncio.create_task(self._send(ip, port, path, dict(payload or {})))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        return len(targets)

    async def _send(self, ip: str, port: int, path: str, payload: Dict[str, Any]) -> bool:
        url = f"{backup_base_url(ip, port)}{path}"
        try:
            response = await asyncio.wait_for(self._request("POST", url, json=payload), self._timeout)
            if response.status_code >= 400:
                logger.warning(f"[Replication] {ip} answered {response.status_code} for {path}")
                return False
            logger.debug(f"[Replication] Sent {path} to {ip}:{port}")
            return True
        except (asyncio.TimeoutError, httpx.TimeoutException):
            logger.warning(f"[Replication] Timeout sending {path} to {ip}:{port}")
        except httpx.HTTPError as e:
            logger.warning(f"[Replication] Failed to send {path} to {ip}:{port}: {e}")
        return False

    async def drain(self) -> None:
        """Wait for every in-flight forward (used at shutdown and in tests)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # Health ------------------------------------------------------------------

    async def check_all(self) -> List[BackupStatusEntry]:
        """Probe every configured backup once, in parallel."""
        prefs = self.preferences.load()
        targets = self._primary_targets(prefs)
        port = prefs.replication_port

        # Forget backups that were removed from the configuration
        for ip in list(self._statuses):
            if ip not in targets:
                del self._statuses[ip]
        for ip in targets:
            self._statuses.setdefault(ip, BackupState.CHECKING)

        if targets:
            results = await asyncio.gather(*(self._probe(ip, port) for ip in targets))
            for ip, state in zip(targets, results):
                previous = self._statuses.get(ip)
                if previous != state:
                    logger.info(f"[Replication] Backup {ip} is {state.value}")
                self._statuses[ip] = state
        return self.statuses()

    async def _probe(self, ip: str, port: int) -> BackupState:
        url = f"{backup_base_url(ip, port)}{HEALTH_PATH}"
        try:
            response = await asyncio.wait_for(self._request("GET", url), self._timeout)
        except asyncio.TimeoutError:
            logger.debug(f"[Replication] Health check for {ip} timed out")
            return BackupState.DISCONNECTED
        except httpx.HTTPError as e:
            logger.debug(f"[Replication] Health check for {ip} failed: {e}")
            return BackupState.DISCONNECTED
        return BackupState.CONNECTED if response.status_code == 200 else BackupState.DISCONNECTED

    def statuses(self) -> List[BackupStatusEntry]:
        targets = self._primary_targets()
        return [
            BackupStatusEntry(ip=ip, status=self._statuses.get(ip, BackupState.CHECKING))
            for ip in targets
        ]

    # Polling -----------------------------------------------------------------

    def start(self) -> None:
        """Start the background health poll on the running loop."""
        self.stop()
        self._poller = asyncio.create_task(self._poll())
        logger.info(f"[Replication] Started backup status polling ({self._poll_interval:g}s interval)")

    def stop(self) -> None:
        if self._poller is not None:
            self._poller.cancel()
            self._poller = None
            logger.info("[Replication] Stopped backup status polling")

    @property
    def polling(self) -> bool:
        return self._poller is not None and not self._poller.done()

    async def _poll(self) -> None:
        while True:
            try:
                await self.check_all()
            except Exception as e:  # noqa: BLE001
                logger.error(f"[Replication] Error checking backup status: {e}")
            await asyncio.sleep(self._poll_interval)
