"""
Offline submission queue.

Form submissions made while offline are appended to a JSON list kept under one
storage key. `drain()` replays them oldest first, one at a time, and removes an
item only after the server confirmed it. The first failure stops the drain so a
later submission never reaches the server before an earlier one.
"""
from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from client.storage import StorageError

QUEUE_KEY = "water_market_request_queue"

log = logging.getLogger("offline_queue")


@dataclass(frozen=True)
class SubmissionResult:
    success: bool
    data: Any = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None


@dataclass(frozen=True)
class DrainOutcome:
    payload: Any
    success: bool
    result: Optional[SubmissionResult] = None
    error: Optional[BaseException] = None


SubmitFn = Callable[[Any], Awaitable[SubmissionResult]]


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


class OfflineQueue:
    def __init__(self, storage, submit: SubmitFn, key: str = QUEUE_KEY, clock: Callable[[], str] = _utcnow_iso):
        self.storage = storage
        self.submit = submit
        self.key = key
        self._clock = clock
        self._draining = False

    @property
    def draining(self) -> bool:
        return self._draining

    def _load(self) -> Optional[List[Dict]]:
        """Stored items, or None when storage could not be read at all."""
        try:
            raw = self.storage.get_item(self.key)
        except StorageError as exc:
            log.debug("Queue storage unreadable", extra={"error": str(exc)})
            return None
        if not raw:
            return []
        try:
            items = json.loads(raw)
        except ValueError:
            log.debug("Queue storage holds invalid JSON", extra={"key": self.key})
            return []
        if not isinstance(items, list):
            return []
        return [item for item in items if isinstance(item, dict) and "payload" in item]

    def _read(self) -> List[Dict]:
        return self._load() or []

    def _write(self, items: List[Dict]) -> bool:
        try:
            self.storage.set_item(self.key, json.dumps(items))
        except (StorageError, TypeError, ValueError) as exc:
            log.debug("Queue storage not writable", extra={"error": str(exc)})
            return False
        return True

    def enqueue(self, payload: Any) -> bool:
        """
        Append a submission. Never raises; returns False when it could not be
        persisted (the submission is then lost).
        """
        items = self._load()
        if items is None:
            # Stored contents unknown; never overwrite them.
            return False
        items.append({"payload": payload, "queued_at": self._clock()})
        persisted = self._write(items)
        if persisted:
            log.info("Submission queued", extra={"queue_length": len(items)})
        return persisted

    def peek_all(self) -> List[Dict]:
        return self._read()

    def __len__(self) -> int:
        return len(self._read())

    def clear(self) -> None:
        try:
            self.storage.remove_item(self.key)
        except StorageError as exc:
            log.debug("Queue storage not clearable", extra={"error": str(exc)})

    def _remove_head(self, expected: Dict) -> bool:
        items = self._load()
        if items is None:
            return False
        if not items or items[0] != expected:
            # Someone cleared or rewrote the queue while the submission was in flight.
            return True
        return self._write(items[1:])

    async def drain(self) -> List[DrainOutcome]:
        """
        Submit queued items head to tail until the queue is empty or one fails.
        A call made while another drain is running returns [] immediately.
        """
        if self._draining:
            return []
        self._draining = True
        outcomes: List[DrainOutcome] = []
        try:
            while True:
                items = self._read()
                if not items:
                    break
                head = items[0]
                payload = head["payload"]
                try:
                    result = await self.submit(payload)
                except Exception as exc:
                    log.warning("Queued submission failed to send", extra={"error": str(exc)})
                    outcomes.append(DrainOutcome(payload=payload, success=False, error=exc))
                    break

                if not result.success:
                    log.warning(
                        "Queued submission rejected",
                        extra={"error_code": result.error_code, "error_message": result.error_message},
                    )
                    outcomes.append(DrainOutcome(payload=payload, success=False, result=result))
                    break

                outcomes.append(DrainOutcome(payload=payload, success=True, result=result))
                if not self._remove_head(head):
                    # Head is still stored; going on would send it twice.
                    break
        finally:
            self._draining = False

        if outcomes:
            log.info(
                "Queue drained",
                extra={"sent": sum(1 for o in outcomes if o.success), "remaining": len(self._read())},
            )
        return outcomes


class ConnectivityWatcher:
    """
    Polls `probe` and drains the queue every time connectivity comes back.
    Starts in the offline state so items left from a previous run are retried
    on the first successful probe.
    """

    def __init__(
        self,
        queue: OfflineQueue,
        probe: Callable[[], Awaitable[bool]],
        interval: float = 5.0,
        on_drained: Optional[Callable[[List[DrainOutcome]], None]] = None,
    ):
        self.queue = queue
        self.probe = probe
        self.interval = interval
        self.on_drained = on_drained
        self.online = False

    async def check_once(self) -> List[DrainOutcome]:
        try:
            online = bool(await self.probe())
        except Exception as exc:
            log.debug("Connectivity probe failed", extra={"error": str(exc)})
            online = False

        came_back = online and not self.online
        self.online = online
        if not came_back:
            return []

        outcomes = await self.queue.drain()
        if outcomes and self.on_drained:
            self.on_drained(outcomes)
        return outcomes

    async def run(self, stop: Optional[asyncio.Event] = None) -> None:
        while not (stop and stop.is_set()):
            await self.check_once()
            await asyncio.sleep(self.interval)


__all__ = [
    "QUEUE_KEY",
    "SubmissionResult",
    "DrainOutcome",
    "OfflineQueue",
    "ConnectivityWatcher",
]
