from typing import Iterable, Optional, Sequence

DEFAULT_QUOTE_ASSETS = ("USDT", "USDC")


def pair_to_wire(pair: str) -> str:
    """'BTC/USDT' -> 'BTCUSDT'."""
    return pair.replace("/", "").strip().upper()


def wire_to_pair(symbol: str, quote_assets: Sequence[str] = DEFAULT_QUOTE_ASSETS) -> Optional[str]:
    """
    'BTCUSDT' -> 'BTC/USDT'. Returns None for symbols whose quote asset is not
    supported (those ticks are dropped). Longest quote suffix wins.
    """
    s = (symbol or "").strip().upper()
    for quote in sorted(quote_assets, key=len, reverse=True):
        if s.endswith(quote) and len(s) > len(quote):
            return f"{s[:-len(quote)]}/{quote}"
    return None


def stream_names(pairs: Iterable[str]) -> list[str]:
    """Combined-stream names for the 24h ticker of each pair, sorted."""
    return sorted(f"{pair_to_wire(p).lower()}@ticker" for p in pairs)
