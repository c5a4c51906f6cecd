import asyncio
import json
import logging
import time
from typing import Any, Callable, Dict, Iterable, Optional, Set

import websockets
from websockets.exceptions import ConnectionClosed, ConnectionClosedError

from ....core.domain.entities.price_tick_entity import PriceTick
from ....core.domain.enums.position_enums import ConnectionState
from .symbols import DEFAULT_QUOTE_ASSETS, pair_to_wire, stream_names, wire_to_pair


def reconnect_delay_ms(attempt: int, base_ms: int = 1000, max_ms: int = 30000) -> int:
    """
    Backoff before reconnect number `attempt` (1-based): min(base * 2^attempt, max).
    attempts 1..6 -> 2000, 4000, 8000, 16000, 30000, 30000 with the defaults.
    """
    return int(min(base_ms * (2 ** attempt), max_ms))


class BinanceTickerStreamClient:
    """
    Native WebSocket client for Binance combined 24h ticker streams.

    - Connects to: {base}/stream?streams=btcusdt@ticker/ethusdt@ticker
    - Keeps `prices`: pair -> latest PriceTick (last value wins, no history).
    - Reconnects after any disconnect with min(base * 2^attempt, max) ms;
      attempt resets to 0 once a connection is established.
    - Changing the subscribed set closes and reopens the socket at once; ticks
      already held for pairs that stay subscribed are kept.
    - Never raises to callers: malformed ticks and connection errors are logged.
    """

    def __init__(
        self,
        base_ws_url: str = "wss://stream.binance.com:9443",
        quote_assets: Iterable[str] = DEFAULT_QUOTE_ASSETS,
        backoff_base_ms: int = 1000,
        backoff_max_ms: int = 30000,
        connect: Callable[..., Any] = websockets.connect,
        logger: Optional[logging.Logger] = None,
    ):
        """
        :param base_ws_url: Binance base WebSocket URL.
        :param quote_assets: quote currencies accepted when mapping wire symbols.
        :param connect: connection factory (websockets.connect signature).
        """
        self._logger = logger or logging.getLogger(self.__class__.__name__)
        self._base_ws_url = base_ws_url.rstrip("/")
        self._quote_assets = tuple(q.upper() for q in quote_assets)
        self._backoff_base_ms = int(backoff_base_ms)
        self._backoff_max_ms = int(backoff_max_ms)
        self._connect = connect

        self.prices: Dict[str, PriceTick] = {}
        self.state: ConnectionState = ConnectionState.DISCONNECTED
        self.attempt: int = 0
        self.last_delay_ms: Optional[int] = None

        self._pairs: Set[str] = set()
        self._ws = None
        self._stop_event = asyncio.Event()
        self._wake_event = asyncio.Event()
        self._runner_task: Optional[asyncio.Task] = None

    # ---------------------
    # public API
    # ---------------------

    @property
    def pairs(self) -> Set[str]:
        return set(self._pairs)

    @property
    def running(self) -> bool:
        return self._runner_task is not None and not self._runner_task.done()

    @property
    def url(self) -> str:
        return f"{self._base_ws_url}/stream?streams={'/'.join(stream_names(self._pairs))}"

    async def subscribe(self, pairs: Iterable[str]) -> None:
        """
        Follow exactly `pairs` (application format). An empty set closes the stream.
        Pairs whose quote asset is unsupported are ignored.
        """
        wanted = {p.strip().upper() for p in pairs if p and isinstance(p, str)}
        wanted = {p for p in wanted if wire_to_pair(pair_to_wire(p), self._quote_assets) == p}

        if not wanted:
            if self._pairs or self.running:
                self._logger.info("No pairs to follow; closing price stream.")
            self._pairs = set()
            await self.close()
            return

        if wanted == self._pairs and self.running:
            return

        dropped = self._pairs - wanted
        self._pairs = wanted
        for pair in dropped:
            self.prices.pop(pair, None)

        if self.running:
            self._logger.info("Resubscribing price stream to %s", sorted(wanted))
            self._wake_event.set()
            await self._close_socket()
            return

        self._stop_event.clear()
        self._runner_task = asyncio.create_task(self._run_loop())
        self._logger.info("Price stream started for %s", sorted(wanted))

    async def close(self) -> None:
        """
        Stop the runner (cancelling a pending reconnect wait) and close the socket.
        """
        self._stop_event.set()
        self._wake_event.set()
        await self._close_socket()
        if self._runner_task:
            try:
                await asyncio.wait_for(self._runner_task, timeout=5)
            except asyncio.TimeoutError:
                self._logger.warning("Timeout waiting price stream to stop; cancelling task.")
                self._runner_task.cancel()
                await asyncio.gather(self._runner_task, return_exceptions=True)
            finally:
                self._runner_task = None
        self.state = ConnectionState.DISCONNECTED

    def get(self, pair: str) -> Optional[PriceTick]:
        return self.prices.get(pair)

    # ---------------------
    # internals
    # ---------------------

    async def _close_socket(self) -> None:
        ws = self._ws
        if ws is None:
            return
        try:
            await ws.close()
        except Exception as exc:
            self._logger.debug("Ignoring error while closing socket: %s", exc)

    async def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            url = self.url
            try:
                self.state = ConnectionState.CONNECTING
                self._logger.info("Connecting WS: %s", url)
                async with self._connect(
                    url,
                    open_timeout=30,
                    close_timeout=5,
                    ping_interval=15,
                    ping_timeout=15,
                    max_queue=1000,
                ) as ws:
                    self._ws = ws
                    self.state = ConnectionState.CONNECTED
                    self.attempt = 0
                    self._logger.info("WS connected: %s", url)

                    if url == self.url:
                        async for message in ws:
                            if self._stop_event.is_set():
                                break
                            self._handle_message(message)

            except asyncio.CancelledError:
                self._ws = None
                self.state = ConnectionState.DISCONNECTED
                raise

            except asyncio.TimeoutError as exc:
                self.state = ConnectionState.ERROR
                self._logger.warning("WS timeout during handshake/connection: %s", exc)

            except (ConnectionClosed, ConnectionClosedError) as exc:
                self.state = ConnectionState.ERROR
                self._logger.warning("WS closed/error: %s", exc)

            except Exception as exc:
                # DNS/TLS/refused and anything else the transport raises
                self.state = ConnectionState.ERROR
                self._logger.warning("WS error: %s", exc)

            self._ws = None
            self.state = ConnectionState.DISCONNECTED
            if self._stop_event.is_set():
                break

            if url != self.url:
                # subscription changed while this socket was open: reopen at once
                continue

            self.attempt += 1
            delay_ms = reconnect_delay_ms(self.attempt, self._backoff_base_ms, self._backoff_max_ms)
            self.last_delay_ms = delay_ms
            self._logger.info("Reconnecting in %d ms (attempt %d)", delay_ms, self.attempt)
            self._wake_event.clear()
            try:
                await asyncio.wait_for(self._wake_event.wait(), timeout=delay_ms / 1000.0)
            except asyncio.TimeoutError:
                pass

    def _handle_message(self, message: Any) -> None:
        """
        Parse a combined-stream (or raw) 24h ticker event into the price map.
        """
        try:
            payload = json.loads(message)
            data = payload.get("data", payload) if isinstance(payload, dict) else None
            if not isinstance(data, dict) or "s" not in data or "c" not in data:
                self._logger.debug("Ignoring non-ticker message: %.200s", message)
                return

            pair = wire_to_pair(str(data["s"]), self._quote_assets)
            if pair is None or pair not in self._pairs:
                return

            tick = PriceTick(
                symbol=pair,
                price=float(data["c"]),
                high=float(data.get("h", data["c"])),
                low=float(data.get("l", data["c"])),
                change24h=float(data.get("P", 0.0)),
                change24h_abs=float(data.get("p", 0.0)),
                received_at=int(time.time() * 1000),
            )
            self.prices[pair] = tick
        except Exception as exc:
            self._logger.warning("Discarding malformed tick: %s (%.200s)", exc, message)
