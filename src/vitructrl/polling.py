"""
Periodic telemetry polling through the GATT queue.
"""

import asyncio
import logging
from typing import Callable, List, Optional

from .core import (
    MONITOR_CHAR_UUID,
    MONITOR_POLL_INTERVAL,
    PROPERTY_CHAR_UUID,
    PROPERTY_POLL_INTERVAL,
)
from .errors import FrameDecodeError, LinkError, SensorSpikeError
from .protocol import MonitorSample, decode_monitor_frame, hexdump
from .transport import GattTransport

logger = logging.getLogger(__name__)

MonitorListener = Callable[[MonitorSample], None]
PropertyListener = Callable[[bytes], None]


class PollingScheduler:
    """Runs the property and monitor polls at independent cadences.

    Both loops issue reads through the transport queue, so they never race
    with command writes. Decoded samples are published synchronously to
    every registered listener, in read order.
    """

    def __init__(
        self,
        transport: GattTransport,
        monitor_interval: float = MONITOR_POLL_INTERVAL,
        property_interval: float = PROPERTY_POLL_INTERVAL,
    ) -> None:
        self._transport = transport
        self.monitor_interval = monitor_interval
        self.property_interval = property_interval
        self._monitor_listeners: List[MonitorListener] = []
        self._property_listeners: List[PropertyListener] = []
        self._monitor_task: Optional[asyncio.Task] = None
        self._property_task: Optional[asyncio.Task] = None
        self.last_sample: Optional[MonitorSample] = None

    @property
    def is_running(self) -> bool:
        return any(
            task is not None and not task.done()
            for task in (self._monitor_task, self._property_task)
        )

    def add_monitor_listener(self, listener: MonitorListener) -> None:
        self._monitor_listeners.append(listener)

    def add_property_listener(self, listener: PropertyListener) -> None:
        self._property_listeners.append(listener)

    def start(self) -> None:
        """Start both polls; already-running polls are left alone."""
        if self._monitor_task is None or self._monitor_task.done():
            self._monitor_task = asyncio.create_task(self._monitor_loop())
        if self._property_task is None or self._property_task.done():
            self._property_task = asyncio.create_task(self._property_loop())
        logger.debug("Polling started")

    def stop(self) -> None:
        """Stop both polls and drop all listeners.

        A read already queued on the transport still completes; its
        result is simply not published.
        """
        for task in (self._monitor_task, self._property_task):
            if task is not None and not task.done():
                task.cancel()
        self._monitor_task = None
        self._property_task = None
        self._monitor_listeners.clear()
        self._property_listeners.clear()
        logger.debug("Polling stopped")

    async def _monitor_loop(self) -> None:
        while True:
            try:
                data = await self._transport.read(MONITOR_CHAR_UUID)
            except LinkError as e:
                logger.warning(f"Monitor poll stopped: {e}")
                return
            self._handle_monitor(data)
            await asyncio.sleep(self.monitor_interval)

    async def _property_loop(self) -> None:
        while True:
            try:
                data = await self._transport.read(PROPERTY_CHAR_UUID)
            except LinkError as e:
                logger.warning(f"Property poll stopped: {e}")
                return
            logger.debug(f"Property: {hexdump(data)}")
            for listener in list(self._property_listeners):
                try:
                    listener(data)
                except Exception as e:
                    logger.error(f"Property listener error: {e}")
            await asyncio.sleep(self.property_interval)

    def _handle_monitor(self, data: bytes) -> None:
        try:
            sample = decode_monitor_frame(data)
        except SensorSpikeError as e:
            # Keep the previous sample as the current one
            logger.debug(f"Dropped monitor frame: {e}")
            return
        except FrameDecodeError as e:
            logger.debug(f"Bad monitor frame [{hexdump(data)}]: {e}")
            return

        self.last_sample = sample
        for listener in list(self._monitor_listeners):
            try:
                listener(sample)
            except Exception as e:
                logger.error(f"Monitor listener error: {e}")
