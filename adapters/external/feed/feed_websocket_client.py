from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from typing import Any, Awaitable, Callable, List, Optional

import websockets
from websockets.exceptions import ConnectionClosed

from adapters.external.feed.feed_protocol import auth_message, decode_frame, trades_command
from core.domain.entities.feed_event_entity import AuthError, AuthOk, FeedEvent

EventHandler = Callable[[FeedEvent], Awaitable[None]]
DisconnectHandler = Callable[[], Awaitable[None]]


class FeedWebsocketClient:
    """
    Persistent websocket session with the market-data feed.

    - Authenticates on every (re)connect and tracks the auth handshake start so a
      watchdog can kill connections whose handshake hangs.
    - Keepalive ping/pong is delegated to the websockets library.
    - Any close or error is followed by a fixed reconnect delay; retries are
      unlimited until stop() is called.
    - Frames are decoded into typed events before reaching `on_event`.
    """

    def __init__(
        self,
        *,
        url: str,
        api_key: str,
        api_secret: str,
        on_event: Optional[EventHandler] = None,
        on_disconnect: Optional[DisconnectHandler] = None,
        ping_interval_s: float = 20.0,
        ping_timeout_s: float = 10.0,
        reconnect_delay_s: float = 10.0,
        auth_timeout_s: float = 30.0,
        watchdog_interval_s: float = 5.0,
        connect: Callable[..., Any] = websockets.connect,
        logger: logging.Logger | None = None,
    ) -> None:
        self._url = url
        self._api_key = api_key
        self._api_secret = api_secret
        self._on_event = on_event
        self._on_disconnect = on_disconnect
        self._ping_interval_s = float(ping_interval_s)
        self._ping_timeout_s = float(ping_timeout_s)
        self._reconnect_delay_s = float(reconnect_delay_s)
        self._auth_timeout_s = float(auth_timeout_s)
        self._watchdog_interval_s = float(watchdog_interval_s)
        self._connect = connect
        self._logger = logger or logging.getLogger(self.__class__.__name__)

        self._ws: Any = None
        self._connected = False
        self._authenticated = False
        self.auth_started_at: Optional[float] = None
        self.reconnects = 0

        self._stop = asyncio.Event()

    @property
    def url(self) -> str:
        return self._url

    @property
    def connected(self) -> bool:
        return self._connected and self._ws is not None

    @property
    def authenticated(self) -> bool:
        return self._authenticated

    def set_handlers(self, *, on_event: Optional[EventHandler], on_disconnect: Optional[DisconnectHandler]) -> None:
        self._on_event = on_event
        self._on_disconnect = on_disconnect

    async def run_forever(self) -> None:
        """
        Connect, authenticate, pump frames; reconnect after any close.
        """
        self._stop.clear()
        while not self._stop.is_set():
            try:
                self._logger.info("Connecting to feed %s", self._url)
                async with self._connect(
                    self._url,
                    ping_interval=self._ping_interval_s,
                    ping_timeout=self._ping_timeout_s,
                    close_timeout=5,
                ) as ws:
                    self._ws = ws
                    self._connected = True
                    self._logger.info("Socket open, authenticating")
                    await self._authenticate()
                    async for raw in ws:
                        await self.handle_frame(raw)
            except ConnectionClosed as exc:
                self._logger.warning("Feed connection closed: %s", exc)
            except (OSError, asyncio.TimeoutError) as exc:
                self._logger.warning("Feed connection failed: %s", exc)
            except Exception as exc:
                self._logger.exception("Feed session error: %s", exc)
            finally:
                await self._mark_closed()

            if self._stop.is_set():
                break
            self.reconnects += 1
            self._logger.warning("Socket closed, reconnecting in %.0fs", self._reconnect_delay_s)
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(self._stop.wait(), timeout=self._reconnect_delay_s)

    async def stop(self) -> None:
        self._stop.set()
        await self.close_current()

    async def close_current(self) -> None:
        """
        Close the active socket; run_forever() takes care of reconnecting.
        """
        ws = self._ws
        if ws is not None:
            with contextlib.suppress(Exception):
                await ws.close()

    async def send_command(self, action: str, symbols: List[str]) -> bool:
        """
        Send a subscribe/unsubscribe for trades. No-op unless connected and authenticated.
        """
        if not (symbols and self._authenticated and self.connected):
            return False
        try:
            await self._ws.send(trades_command(action, list(symbols)))
        except Exception as exc:
            self._logger.exception("%s failed: %s", action, exc)
            return False
        self._logger.info("-> %s %s", action, list(symbols))
        return True

    async def handle_frame(self, raw: Any) -> None:
        self._logger.debug("<- %.500s", raw)
        for event in decode_frame(raw):
            if isinstance(event, AuthOk):
                self._authenticated = True
                self.auth_started_at = None
                self._logger.info("Authenticated")
            elif isinstance(event, AuthError):
                self._authenticated = False
                self._logger.error("Authentication failed (code=%s): %s", event.code, event.message)

            if self._on_event is not None:
                try:
                    await self._on_event(event)
                except Exception as exc:
                    self._logger.exception("Feed event handler failed for %s: %s", event.kind, exc)

            if isinstance(event, AuthError):
                await self.close_current()

    async def watch_auth_timeout(self) -> None:
        """
        Watchdog: close the socket when the auth handshake takes longer than the timeout.
        """
        while not self._stop.is_set():
            await self.check_auth_timeout()
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(self._stop.wait(), timeout=self._watchdog_interval_s)

    async def check_auth_timeout(self, now: Optional[float] = None) -> bool:
        started = self.auth_started_at
        if started is None or self._authenticated:
            return False
        now = time.monotonic() if now is None else now
        if now - started <= self._auth_timeout_s:
            return False
        self._logger.error("Auth timeout after %.0fs, restarting socket", now - started)
        self.auth_started_at = None
        await self.close_current()
        return True

    async def _authenticate(self) -> None:
        self.auth_started_at = time.monotonic()
        try:
            await self._ws.send(auth_message(self._api_key, self._api_secret))
        except Exception as exc:
            self._logger.exception("Auth send failed: %s", exc)
            await self.close_current()

    async def _mark_closed(self) -> None:
        was_connected = self._connected
        self._ws = None
        self._connected = False
        self._authenticated = False
        self.auth_started_at = None
        if was_connected and self._on_disconnect is not None:
            try:
                await self._on_disconnect()
            except Exception as exc:
                self._logger.exception("Disconnect handler failed: %s", exc)
