import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, List, Optional

import requests
from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from hodl import db, socketio
from hodl.errors import AllSourcesUnavailable, PriceSourceError
from .sources import PriceSource, sources_from_names
from .store import set_price


@dataclass(frozen=True)
class FetchResult:
    price: Decimal
    source: str


@dataclass
class CycleSummary:
    iterations: int = 0
    ok: int = 0
    failed: int = 0
    last_price: Optional[Decimal] = None


class PriceFetcher:
    """Tries each source in order; the first positive price wins."""

    def __init__(self, sources: List[PriceSource], timeout: float = 5.0, session: Optional[requests.Session] = None):
        if not sources:
            raise ValueError('PriceFetcher needs at least one source')
        self.sources = list(sources)
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, config, session: Optional[requests.Session] = None) -> 'PriceFetcher':
        return cls(
            sources_from_names(config.get('PRICE_SOURCES') or ['kraken', 'binance', 'coingecko']),
            timeout=float(config.get('PRICE_SOURCE_TIMEOUT_SEC', 5)),
            session=session,
        )

    def fetch_once(self) -> FetchResult:
        failures = []
        for source in self.sources:
            try:
                price = source.fetch(self.session, self.timeout)
            except PriceSourceError as exc:
                current_app.logger.warning(f"[price-source-failed] source={source.name} error={exc}")
                failures.append(exc)
                continue
            return FetchResult(price=price, source=source.name)
        raise AllSourcesUnavailable(failures)

    def run_cycle(self, iterations: int, interval: float, sleep: Callable[[float], None] = time.sleep) -> CycleSummary:
        """Fetch and store ``iterations`` times, ``interval`` seconds apart.

        A failed iteration leaves the stored price untouched and the cycle
        carries on with the next one.
        """
        summary = CycleSummary()
        for i in range(iterations):
            summary.iterations += 1
            try:
                result = self.fetch_once()
                sample = set_price(result.price, source=result.source)
            except AllSourcesUnavailable as exc:
                summary.failed += 1
                current_app.logger.error(f"[fetch-failed] iteration={i} {exc}")
            except ValueError as exc:
                # Positive upstream value that rounds to zero at store precision
                summary.failed += 1
                current_app.logger.error(f"[fetch-rejected] iteration={i} {exc}")
            except SQLAlchemyError:
                db.session.rollback()
                summary.failed += 1
                current_app.logger.exception(f"[fetch-store-failed] iteration={i}")
            else:
                summary.ok += 1
                summary.last_price = sample.usd
                current_app.logger.debug(f"[fetch] iteration={i} source={result.source} usd={sample.usd}")
            if i < iterations - 1:
                sleep(interval)
        current_app.logger.info(
            f"[fetch-cycle] iterations={summary.iterations} ok={summary.ok} failed={summary.failed} last={summary.last_price}"
        )
        return summary


def run_fetch_cycle(
    app,
    fetcher: Optional[PriceFetcher] = None,
    iterations: Optional[int] = None,
    interval: Optional[float] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> CycleSummary:
    """One scheduled invocation, as run by cron via ``flask fetch-prices``."""
    with app.app_context():
        fetcher = fetcher or PriceFetcher.from_config(app.config)
        return fetcher.run_cycle(
            iterations if iterations is not None else int(app.config.get('PRICE_FETCH_ITERATIONS', 30)),
            interval if interval is not None else float(app.config.get('PRICE_FETCH_INTERVAL_SEC', 2)),
            sleep=sleep,
        )


def start_price_fetcher(app) -> None:
    """Run fetch cycles back-to-back in a Socket.IO background task."""
    fetcher = PriceFetcher.from_config(app.config)

    def _worker():
        app.logger.info(f"[fetcher-start] sources={[s.name for s in fetcher.sources]}")
        while True:
            try:
                run_fetch_cycle(app, fetcher, sleep=socketio.sleep)
            except Exception:
                app.logger.exception('[fetcher-cycle-crashed]')
                socketio.sleep(float(app.config.get('PRICE_FETCH_INTERVAL_SEC', 2)))

    socketio.start_background_task(_worker)
