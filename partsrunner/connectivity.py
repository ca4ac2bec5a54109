"""
Connectivity monitor

Tracks whether the device can reach the driver API and tells subscribers when
that changes (the `online` / `offline` events of the browser).
"""

from __future__ import annotations

import inspect
from typing import Awaitable, Callable, Union

import httpx
import structlog

logger = structlog.get_logger()

ConnectivityCallback = Callable[[bool], Union[Awaitable[None], None]]


class ConnectivityMonitor:
    def __init__(self, *, online: bool = True, probe_url: str | None = None) -> None:
        self._online = online
        self.probe_url = probe_url
        self._subscribers: list[ConnectivityCallback] = []

    @property
    def is_online(self) -> bool:
        return self._online

    def subscribe(self, callback: ConnectivityCallback) -> None:
        if callback not in self._subscribers:
            self._subscribers.append(callback)

    def unsubscribe(self, callback: ConnectivityCallback) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    async def set_online(self, online: bool) -> None:
        """Record the connectivity state and notify subscribers on change."""
        if online == self._online:
            return
        self._online = online
        logger.info("Connectivity changed", online=online)

        for callback in list(self._subscribers):
            # One failing subscriber must not starve the others.
            try:
                result = callback(online)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                logger.error(
                    "Connectivity subscriber failed",
                    callback=getattr(callback, "__qualname__", repr(callback)),
                    error=str(exc),
                )

    async def probe(self, client: httpx.AsyncClient) -> bool:
        """Check the probe URL and update the state. Without a URL the state is kept."""
        if not self.probe_url:
            return self._online
        try:
            response = await client.get(self.probe_url)
            online = response.status_code < 500
        except httpx.TransportError as exc:
            logger.debug("Connectivity probe failed", url=self.probe_url, error=str(exc))
            online = False
        await self.set_online(online)
        return online
