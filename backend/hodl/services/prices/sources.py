"""External BTC/USD ticker providers.

Each source knows its URL and how to dig the price out of the payload.
Anything short of a strictly positive finite number is a failure.
"""
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Iterable, List, Optional

import requests

from hodl.errors import PriceSourceError

HEADERS = {
    'User-Agent': 'hodl-or-fold/1.0',
    'Accept': 'application/json',
}


class PriceSource:
    def __init__(self, name: str, url: str, extract: Callable[[Any], Any], params: Optional[Dict[str, str]] = None):
        self.name = name
        self.url = url
        self.params = params or {}
        self.extract = extract

    def __repr__(self):
        return f"PriceSource({self.name!r})"

    def fetch(self, session: requests.Session, timeout: float) -> Decimal:
        try:
            response = session.get(self.url, params=self.params, headers=HEADERS, timeout=timeout)
        except requests.exceptions.RequestException as exc:
            raise PriceSourceError(self.name, f"request failed: {exc}") from exc
        if not response.ok:
            raise PriceSourceError(self.name, f"HTTP {response.status_code}")
        try:
            payload = response.json()
        except ValueError as exc:
            raise PriceSourceError(self.name, 'malformed JSON') from exc
        try:
            raw = self.extract(payload)
        except (KeyError, IndexError, TypeError, AttributeError) as exc:
            raise PriceSourceError(self.name, f"unexpected payload: {exc!r}") from exc
        return _positive_decimal(self.name, raw)


def _positive_decimal(name: str, raw) -> Decimal:
    if isinstance(raw, bool) or raw is None:
        raise PriceSourceError(name, f"not a number: {raw!r}")
    if isinstance(raw, float):
        raw = repr(raw)
    try:
        price = Decimal(str(raw))
    except (InvalidOperation, ValueError) as exc:
        raise PriceSourceError(name, f"not a number: {raw!r}") from exc
    if not price.is_finite() or price <= 0:
        raise PriceSourceError(name, f"non-positive price: {raw!r}")
    return price


def _kraken(payload):
    if payload.get('error'):
        raise KeyError(', '.join(payload['error']))
    return payload['result']['XXBTZUSD']['c'][0]


def _binance(payload):
    return payload['price']


def _coingecko(payload):
    return payload['bitcoin']['usd']


SOURCES: Dict[str, PriceSource] = {
    'kraken': PriceSource(
        'kraken',
        'https://api.kraken.com/0/public/Ticker',
        _kraken,
        {'pair': 'XBTUSD'},
    ),
    'binance': PriceSource(
        'binance',
        'https://api.binance.com/api/v3/ticker/price',
        _binance,
        {'symbol': 'BTCUSDT'},
    ),
    'coingecko': PriceSource(
        'coingecko',
        'https://api.coingecko.com/api/v3/simple/price',
        _coingecko,
        {'ids': 'bitcoin', 'vs_currencies': 'usd'},
    ),
}


def sources_from_names(names: Iterable[str]) -> List[PriceSource]:
    """Resolve configured source names, preserving order."""
    resolved = []
    for name in names:
        key = name.strip().lower()
        if key not in SOURCES:
            raise ValueError(f"unknown price source: {name!r}")
        resolved.append(SOURCES[key])
    if not resolved:
        raise ValueError('at least one price source is required')
    return resolved
