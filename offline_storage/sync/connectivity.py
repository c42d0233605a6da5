"""
Connectivity observation.

The replay queue subscribes to a ConnectivityObserver and drains as soon as
the device comes back online. Two observers are provided:

- ManualConnectivity: the application pushes state changes (e.g. from a
  platform network-status callback)
- DnsConnectivityProbe: polls DNS resolution of a well-known host
"""

from __future__ import annotations

import asyncio
import socket
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass

from ..logging_utils import get_storage_logger

logger = get_storage_logger("connectivity")

ConnectivityCallback = Callable[[bool], None]


@dataclass
class ConnectivityState:
    """Last known connectivity and the time of the last successful sync."""

    is_connected: bool = False
    last_sync_at: int | None = None


class ConnectivityObserver(ABC):
    """Source of connectivity transitions.

    Subscribers are called synchronously with the new state whenever it
    changes. Repeated reports of the same state are not delivered.
    """

    def __init__(self, initial: bool = False):
        self._connected = initial
        self._subscribers: list[ConnectivityCallback] = []

    @property
    def is_connected(self) -> bool:
        return self._connected

    def subscribe(self, callback: ConnectivityCallback) -> Callable[[], None]:
        """Register a callback for connectivity changes.

        Returns:
            A function that removes the subscription
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _publish(self, connected: bool) -> None:
        if connected == self._connected:
            return
        self._connected = connected
        logger.info("Connectivity changed: %s", "online" if connected else "offline")
        for callback in list(self._subscribers):
            try:
                callback(connected)
            except Exception:
                logger.exception("Connectivity subscriber failed")

    @abstractmethod
    async def close(self) -> None:
        """Stop observing."""
        ...


class ManualConnectivity(ConnectivityObserver):
    """Observer driven by explicit state reports from the application."""

    def set_connected(self, connected: bool) -> None:
        """Report the current connectivity state."""
        self._publish(bool(connected))

    async def close(self) -> None:
        self._subscribers.clear()


class DnsConnectivityProbe(ConnectivityObserver):
    """Observer that periodically resolves a host name to detect connectivity."""

    def __init__(
        self,
        host: str = "dns.google",
        interval_ms: int = 10000,
        timeout_ms: int = 5000,
        initial: bool = False,
    ):
        """Initialize the probe.

        Args:
            host: Host name whose resolution signals connectivity
            interval_ms: Delay between probes
            timeout_ms: Resolution timeout
            initial: Assumed state before the first probe
        """
        super().__init__(initial)
        self.host = host
        self.interval_ms = interval_ms
        self.timeout_ms = timeout_ms
        self._task: asyncio.Task[None] | None = None

    async def check(self) -> bool:
        """Probe connectivity once and publish the result.

        Returns:
            True if online, False otherwise
        """
        loop = asyncio.get_running_loop()
        try:
            await asyncio.wait_for(
                loop.run_in_executor(None, socket.gethostbyname, self.host),
                timeout=self.timeout_ms / 1000,
            )
            connected = True
        except (OSError, asyncio.TimeoutError):
            connected = False

        self._publish(connected)
        return connected

    def start(self) -> None:
        """Start background probing."""
        if self._task is not None:
            return

        async def probe_loop() -> None:
            while True:
                await self.check()
                await asyncio.sleep(self.interval_ms / 1000)

        self._task = asyncio.create_task(probe_loop())

    async def stop(self) -> None:
        """Stop background probing."""
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def close(self) -> None:
        await self.stop()
        self._subscribers.clear()
