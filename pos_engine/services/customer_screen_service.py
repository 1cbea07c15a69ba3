"""
Customer Screen Service - best-effort cart snapshots for the customer-facing display.

Snapshots go through a bounded queue (oldest dropped on overflow) drained
by a daemon worker at a minimum interval. Only the latest snapshot per
channel is sent. Publishing never raises into the cart.
"""
import json
import logging
import threading
import time
from collections import OrderedDict, deque
from typing import Any, Dict, List, Optional

import redis
from redis.exceptions import ConnectionError, RedisError, TimeoutError
from flask import Flask

from pos_engine.models import CartLine, Customer, OrderTotals

logger = logging.getLogger(__name__)

DEFAULT_CUSTOMER_LABEL = 'Cliente'


def build_screen_snapshot(
    lines: List[CartLine],
    totals: OrderTotals,
    customer: Optional[Customer],
    document_type: str,
    status: str = '',
) -> Dict[str, Any]:
    """What the customer sees: who, items and totals."""
    items = []
    for line, parts in zip(lines, totals.lines):
        items.append({
            'name': line.name,
            'qty': line.quantity,
            'price': float(line.unit_price),
            'lineTotal': float(parts.total),
        })
    return {
        'customer': (customer.name if customer and customer.name else DEFAULT_CUSTOMER_LABEL),
        'documentType': document_type,
        'items': items,
        'totals': {
            'subtotal': float(totals.subtotal),
            'tax': float(totals.tax_total),
            'discount': float(totals.total_discounts),
            'total': float(totals.grand_total),
        },
        'status': status or '',
    }


class HttpScreenSink:
    """Relays snapshots to the backend broadcast endpoint."""

    def __init__(self, backend):
        self.backend = backend

    def send(self, channel: str, payload: Dict[str, Any]) -> bool:
        return self.backend.broadcast(channel, payload)


class RedisScreenSink:
    """
    Keeps the last snapshot per channel in Redis and publishes updates.

    Degrades to a no-op when Redis is unreachable.
    """

    def __init__(self, redis_url: str, prefix: str = 'pos'):
        self._prefix = prefix
        self.client: Optional[redis.Redis] = None
        try:
            self.client = redis.from_url(
                redis_url,
                decode_responses=True,
                socket_connect_timeout=3,
                socket_timeout=3,
                retry_on_timeout=True,
            )
            self.client.ping()
            logger.info(f"[SCREEN] Redis sink connected: {redis_url}")
        except (ConnectionError, TimeoutError, RedisError) as e:
            logger.warning(f"[SCREEN] Redis connection failed: {e}. Screen updates DISABLED.")
            self.client = None

    def _key(self, channel: str) -> str:
        return f"{self._prefix}:screen:{channel}"

    def send(self, channel: str, payload: Dict[str, Any]) -> bool:
        if self.client is None:
            return False
        try:
            key = self._key(channel)
            self.client.set(key, json.dumps(payload))
            self.client.publish(key, json.dumps({'type': 'update', 'payload': payload}))
            return True
        except (RedisError, TypeError) as e:
            logger.warning(f"[SCREEN] Redis publish error: {e}")
            return False


class CustomerScreenPublisher:
    """Bounded, drop-oldest publish port drained by a background worker."""

    def __init__(self, sink, min_interval_ms: int = 200, queue_size: int = 32, start: bool = True):
        self.sink = sink
        self.min_interval = max(0, min_interval_ms) / 1000.0
        self._queue = deque(maxlen=max(1, queue_size))
        self._cond = threading.Condition()
        self._last_sent = 0.0
        self._stopped = False
        self._thread: Optional[threading.Thread] = None
        self.dropped = 0
        if start:
            self.start()

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stopped = False
        self._thread = threading.Thread(target=self._run, name='customer-screen', daemon=True)
        self._thread.start()

    def stop(self) -> None:
        with self._cond:
            self._stopped = True
            self._cond.notify_all()
        if self._thread is not None:
            self._thread.join(timeout=1)

    def publish(self, channel: str, payload: Dict[str, Any]) -> None:
        """Queue a snapshot. Never blocks and never raises."""
        with self._cond:
            if len(self._queue) == self._queue.maxlen:
                self.dropped += 1
            self._queue.append((channel, payload))
            self._cond.notify()

    @property
    def pending(self) -> int:
        with self._cond:
            return len(self._queue)

    def _take_latest(self) -> List[tuple]:
        """Drain the queue keeping only the newest snapshot of each channel."""
        latest: 'OrderedDict[str, Dict[str, Any]]' = OrderedDict()
        while self._queue:
            channel, payload = self._queue.popleft()
            latest.pop(channel, None)
            latest[channel] = payload
        return list(latest.items())

    def flush(self) -> int:
        """Send whatever is queued right now; returns the number of snapshots sent."""
        with self._cond:
            batch = self._take_latest()
        return self._send(batch)

    def _send(self, batch: List[tuple]) -> int:
        sent = 0
        for channel, payload in batch:
            try:
                if self.sink.send(channel, payload):
                    sent += 1
            except Exception as e:
                logger.warning(f"[SCREEN] Sink error on channel {channel}: {e}")
        self._last_sent = time.monotonic()
        return sent

    def _run(self) -> None:
        while True:
            with self._cond:
                while not self._queue and not self._stopped:
                    self._cond.wait()
                if self._stopped:
                    return
            wait = self.min_interval - (time.monotonic() - self._last_sent)
            if wait > 0:
                time.sleep(wait)
            with self._cond:
                batch = self._take_latest()
            self._send(batch)


class NullScreenSink:
    """Used when the customer screen is disabled."""

    def send(self, channel: str, payload: Dict[str, Any]) -> bool:
        return False


def init_customer_screen(app: Flask, backend) -> CustomerScreenPublisher:
    """Build the publisher from config and register it on the app."""
    if not app.config.get('CUSTOMER_SCREEN_ENABLED', True):
        sink = NullScreenSink()
        logger.info("[SCREEN] Customer screen is DISABLED via config")
    elif app.config.get('CUSTOMER_SCREEN_SINK', 'http') == 'redis':
        sink = RedisScreenSink(
            app.config.get('REDIS_URL', 'redis://localhost:6379/0'),
            prefix=app.config.get('CUSTOMER_SCREEN_KEY_PREFIX', 'pos'),
        )
    else:
        sink = HttpScreenSink(backend)

    publisher = CustomerScreenPublisher(
        sink,
        min_interval_ms=int(app.config.get('CUSTOMER_SCREEN_MIN_INTERVAL_MS', 200)),
        queue_size=int(app.config.get('CUSTOMER_SCREEN_QUEUE_SIZE', 32)),
        start=not app.config.get('TESTING', False),
    )
    app.extensions['customer_screen'] = publisher
    return publisher
