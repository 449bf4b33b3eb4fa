"""
Serialized GATT transport.

The trainer's BLE stack tolerates exactly one outstanding GATT operation;
issuing a second one while the first is pending fails with an "operation
already in progress" error. Every read, write and notification
subscription therefore goes through a single FIFO queue here, and only the
head of the queue is ever on the wire.

Notifications are push events and bypass the queue entirely.
"""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Deque, List, Optional

from .errors import LinkError
from .protocol import hexdump

logger = logging.getLogger(__name__)

NotificationCallback = Callable[[bytes], None]


class OperationKind(Enum):
    READ = "read"
    WRITE = "write"
    SUBSCRIBE = "subscribe"


@dataclass
class GattOperation:
    """A single queued GATT request."""

    kind: OperationKind
    char_uuid: str
    payload: bytes = b""
    response: bool = False
    callback: Optional[NotificationCallback] = None
    future: Optional[asyncio.Future] = field(default=None, repr=False)

    def describe(self) -> str:
        if self.kind is OperationKind.WRITE:
            return f"write {self.char_uuid} [{hexdump(self.payload)}]"
        return f"{self.kind.value} {self.char_uuid}"


class GattTransport:
    """FIFO operation queue in front of a bleak client.

    Args:
        client: A connected ``BleakClient`` (or anything with the same
            ``read_gatt_char``/``write_gatt_char``/``start_notify`` API)
    """

    def __init__(self, client: Any) -> None:
        self._client = client
        self._queue: Deque[GattOperation] = deque()
        self._busy = False
        self._current: Optional[GattOperation] = None
        self._closed = False
        self._worker: Optional[asyncio.Task] = None
        self._subscriptions: dict[str, NotificationCallback] = {}

    @property
    def is_connected(self) -> bool:
        return not self._closed and bool(getattr(self._client, "is_connected", False))

    @property
    def busy(self) -> bool:
        """True while an operation is outstanding on the link."""
        return self._busy

    @property
    def pending(self) -> int:
        """Number of queued operations not yet issued."""
        return len(self._queue)

    @property
    def subscriptions(self) -> List[str]:
        """Characteristics with notifications enabled on the live link."""
        return sorted(self._subscriptions)

    def enqueue(self, op: GattOperation) -> asyncio.Future:
        """Queue an operation and return a future for its result.

        Reads resolve to ``bytes``, writes and subscriptions to ``None``.
        If the transport is already closed the future fails immediately
        with :class:`LinkError`.
        """
        loop = asyncio.get_running_loop()
        op.future = loop.create_future()
        if self._closed:
            op.future.set_exception(LinkError(f"not connected: {op.describe()}"))
            return op.future

        self._queue.append(op)
        self._pump()
        return op.future

    async def write(self, char_uuid: str, data: bytes, response: bool = False) -> None:
        """Write ``data`` to a characteristic once every earlier op is done."""
        op = GattOperation(OperationKind.WRITE, char_uuid, bytes(data), response)
        await asyncio.shield(self.enqueue(op))

    async def read(self, char_uuid: str) -> bytes:
        """Read a characteristic once every earlier op is done."""
        op = GattOperation(OperationKind.READ, char_uuid)
        return await asyncio.shield(self.enqueue(op))

    async def subscribe(self, char_uuid: str, callback: NotificationCallback) -> None:
        """Enable notifications and route each payload to ``callback``."""
        op = GattOperation(OperationKind.SUBSCRIBE, char_uuid, callback=callback)
        await asyncio.shield(self.enqueue(op))

    def _pump(self) -> None:
        """Issue the next queued operation if the link is idle."""
        if self._busy or self._closed or not self._queue:
            return
        op = self._queue.popleft()
        self._busy = True
        self._current = op
        self._worker = asyncio.create_task(self._execute(op))

    async def _execute(self, op: GattOperation) -> None:
        try:
            result = await self._perform(op)
        except asyncio.CancelledError:
            self._resolve_error(op, LinkError(f"cancelled: {op.describe()}"))
            raise
        except Exception as e:
            logger.error(f"GATT {op.describe()} failed: {e}")
            self._resolve_error(op, LinkError(f"{op.kind.value} failed: {e}"))
        else:
            if op.future is not None and not op.future.done():
                op.future.set_result(result)
        finally:
            self._busy = False
            self._current = None
            self._pump()

    async def _perform(self, op: GattOperation) -> Any:
        if op.kind is OperationKind.WRITE:
            logger.debug(f"TX {op.char_uuid}: {hexdump(op.payload)}")
            await self._client.write_gatt_char(
                op.char_uuid, op.payload, response=op.response
            )
            return None
        if op.kind is OperationKind.READ:
            data = await self._client.read_gatt_char(op.char_uuid)
            return bytes(data)

        callback = op.callback
        if callback is None:
            raise ValueError(f"no notification callback for {op.char_uuid}")

        def _dispatch(_sender: Any, data: bytearray) -> None:
            try:
                callback(bytes(data))
            except Exception as e:
                logger.error(f"Notification handler error on {op.char_uuid}: {e}")

        await self._client.start_notify(op.char_uuid, _dispatch)
        self._subscriptions[op.char_uuid] = callback
        return None

    @staticmethod
    def _resolve_error(op: GattOperation, error: LinkError) -> None:
        if op.future is not None and not op.future.done():
            op.future.set_exception(error)

    def fail_all(self, reason: str = "link lost") -> None:
        """Mark the link dead and fail every queued and in-flight operation.

        Called from the disconnect callback; safe to call more than once.
        """
        if self._closed:
            return
        self._closed = True
        failed = 0
        if self._current is not None:
            self._resolve_error(self._current, LinkError(reason))
            failed += 1
        while self._queue:
            self._resolve_error(self._queue.popleft(), LinkError(reason))
            failed += 1
        self._subscriptions.clear()
        if failed:
            logger.warning(f"Failed {failed} pending GATT operation(s): {reason}")

    async def close(self) -> None:
        """Fail pending operations and disconnect the underlying client."""
        self.fail_all("transport closed")
        if self._worker is not None and not self._worker.done():
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
        try:
            await self._client.disconnect()
        except Exception as e:
            logger.warning(f"Disconnect failed: {e}")
