"""Single-slot price store backed by the ``price_feed`` table.

There is exactly one row per tracked asset. The fetcher overwrites it in
place and everything else reads it; reads always go to the database so a
write is visible to the very next ``get_price`` call on any instance.
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from hodl import db
from hodl.models import PriceFeed, isoformat_z, price_out, utcnow


@dataclass(frozen=True)
class PriceSample:
    usd: Decimal
    ts: Optional[datetime]
    source: Optional[str] = None

    def to_dict(self):
        return {
            'usd': price_out(self.usd),
            'ts': isoformat_z(self.ts),
            'source': self.source,
        }


def _decimals() -> int:
    return int(current_app.config.get('PRICE_DECIMALS', 2))


def _asset() -> str:
    return current_app.config.get('PRICE_ASSET', 'btc')


def normalize_price(value, decimals: Optional[int] = None) -> Decimal:
    """Quantize a price so equal prices compare (and serialize) identically.

    Floats go through ``repr`` first so 68010.4 stays 68010.4 rather than
    its binary expansion.
    """
    if decimals is None:
        decimals = _decimals()
    if isinstance(value, bool):
        raise ValueError(f"not a price: {value!r}")
    if isinstance(value, float):
        value = repr(value)
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"not a price: {value!r}") from exc
    if not amount.is_finite():
        raise ValueError(f"not a price: {value!r}")
    return amount.quantize(Decimal(1).scaleb(-decimals), rounding=ROUND_HALF_UP)


def get_price() -> Optional[PriceSample]:
    """Latest sample, or None while nothing real has been recorded."""
    row = db.session.execute(
        db.select(PriceFeed.usd, PriceFeed.ts, PriceFeed.source).where(PriceFeed.k == _asset())
    ).first()
    if row is None or row.usd is None:
        return None
    usd = normalize_price(row.usd)
    # The seeded row carries a zero sentinel until the first fetch lands
    if usd <= 0:
        return None
    return PriceSample(usd=usd, ts=row.ts, source=row.source)


def set_price(value, source: Optional[str] = None, ts: Optional[datetime] = None) -> PriceSample:
    usd = normalize_price(value)
    if usd <= 0:
        raise ValueError(f"refusing to store non-positive price {usd}")
    ts = ts or utcnow()
    asset = _asset()
    stmt = db.update(PriceFeed).where(PriceFeed.k == asset).values(usd=usd, ts=ts, source=source)
    result = db.session.execute(stmt)
    if result.rowcount == 0:
        db.session.add(PriceFeed(k=asset, usd=usd, ts=ts, source=source))
        try:
            db.session.commit()
        except IntegrityError:
            # Another writer created the row first; overwrite it instead
            db.session.rollback()
            db.session.execute(stmt)
            db.session.commit()
    else:
        db.session.commit()
    return PriceSample(usd=usd, ts=ts, source=source)
