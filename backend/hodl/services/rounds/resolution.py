"""Round resolution.

A round resolves only once both of these hold at the same time:

1. the round timer (ROUND_DURATION_SEC, 60s by default) has run out, and
2. the stored price differs from the entry price after normalization.

There is no deadline on the second condition. A round whose price never
moves stays pending forever rather than settling against a frozen value.

Nothing runs in the background per guess. ``try_resolve`` is called on
demand (the client polls it) and is safe to call any number of times from
any number of instances: the pending -> resolved write is a conditional
UPDATE, so exactly one caller applies the score delta and everyone else
reads the stored result.
"""
import math
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from flask import current_app

from hodl import db
from hodl.errors import GuessNotFound
from hodl.models import (
    DIRECTION_DOWN,
    DIRECTION_UP,
    OUTCOME_CORRECT,
    OUTCOME_WRONG,
    STATUS_PENDING,
    STATUS_RESOLVED,
    Guess,
    price_out,
    utcnow,
)
from hodl.services.prices.store import get_price, normalize_price
from .registry import apply_score_delta, current_score

REASON_TIMER = 'timer'
REASON_PRICE_UNAVAILABLE = 'price_unavailable'
REASON_AWAITING_PRICE_CHANGE = 'awaiting_price_change'


@dataclass(frozen=True)
class Verdict:
    """What ``evaluate`` decided; ``settle`` means both conditions now hold."""
    status: str
    reason: Optional[str] = None
    seconds_left: Optional[int] = None
    outcome: Optional[str] = None
    price: Optional[Decimal] = None
    settle: bool = False


@dataclass(frozen=True)
class ResolutionView:
    id: str
    status: str
    outcome: Optional[str] = None
    score: Optional[int] = None
    current_price: Optional[Decimal] = None
    reason: Optional[str] = None
    seconds_left: Optional[int] = None

    def to_dict(self):
        resolved = self.status == STATUS_RESOLVED
        return {
            'id': self.id,
            'status': self.status,
            'outcome': self.outcome if resolved else None,
            'score': self.score if resolved else None,
            'currentPrice': price_out(self.current_price) if resolved else None,
            'reason': None if resolved else self.reason,
            'secondsLeft': self.seconds_left if self.reason == REASON_TIMER and not resolved else None,
        }


def elapsed_seconds(started_at: datetime, now: datetime) -> int:
    """Whole seconds since ``started_at``; a clock behind the row counts as zero."""
    return max(0, math.floor((now - started_at).total_seconds()))


def outcome_for(direction: str, entry: Decimal, current: Decimal) -> str:
    if (direction == DIRECTION_UP and current > entry) or (direction == DIRECTION_DOWN and current < entry):
        return OUTCOME_CORRECT
    return OUTCOME_WRONG


def evaluate(guess: Guess, now: datetime, price, round_seconds: int = 60, decimals: int = 2) -> Verdict:
    """Pure decision for one guess given the clock and the current price.

    ``price`` is the current stored price or None when there is none.
    """
    if guess.status == STATUS_RESOLVED:
        return Verdict(status=STATUS_RESOLVED, outcome=guess.outcome, price=guess.price_at_resolve)

    elapsed = elapsed_seconds(guess.guessed_at, now)
    if elapsed < round_seconds:
        return Verdict(status=STATUS_PENDING, reason=REASON_TIMER, seconds_left=round_seconds - elapsed)

    if price is None:
        return Verdict(status=STATUS_PENDING, reason=REASON_PRICE_UNAVAILABLE)

    current = normalize_price(price, decimals)
    entry = normalize_price(guess.price_at_guess, decimals)
    if current == entry:
        return Verdict(status=STATUS_PENDING, reason=REASON_AWAITING_PRICE_CHANGE)

    return Verdict(
        status=STATUS_RESOLVED,
        outcome=outcome_for(guess.direction, entry, current),
        price=current,
        settle=True,
    )


def _resolved_view(guess: Guess) -> ResolutionView:
    decimals = int(current_app.config.get('PRICE_DECIMALS', 2))
    return ResolutionView(
        id=guess.id,
        status=STATUS_RESOLVED,
        outcome=guess.outcome,
        score=current_score(guess.player_id),
        current_price=normalize_price(guess.price_at_resolve, decimals),
    )


def _settle(guess: Guess, verdict: Verdict, now: datetime) -> ResolutionView:
    guess_id, player_id, entry = guess.id, guess.player_id, guess.price_at_guess
    result = db.session.execute(
        db.update(Guess)
        .where(Guess.id == guess_id, Guess.status == STATUS_PENDING)
        .values(
            status=STATUS_RESOLVED,
            outcome=verdict.outcome,
            price_at_resolve=verdict.price,
            resolved_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        # Someone else resolved it between our read and this write
        db.session.rollback()
        current_app.logger.info(f"[resolve-lost-race] guess={guess_id}")
        return _resolved_view(db.session.get(Guess, guess_id))

    delta = 1 if verdict.outcome == OUTCOME_CORRECT else -1
    apply_score_delta(player_id, delta, now)
    db.session.commit()
    current_app.logger.info(
        f"[resolve] guess={guess_id} player={player_id} outcome={verdict.outcome} "
        f"entry={entry} resolve={verdict.price} delta={delta:+d}"
    )
    return _resolved_view(db.session.get(Guess, guess_id))


def try_resolve(guess_id: str, now: Optional[datetime] = None) -> ResolutionView:
    guess = db.session.get(Guess, guess_id)
    if guess is None:
        raise GuessNotFound(guess_id)

    if guess.status == STATUS_RESOLVED:
        return _resolved_view(guess)

    now = now or utcnow()
    sample = get_price()
    verdict = evaluate(
        guess,
        now,
        sample.usd if sample is not None else None,
        round_seconds=int(current_app.config.get('ROUND_DURATION_SEC', 60)),
        decimals=int(current_app.config.get('PRICE_DECIMALS', 2)),
    )
    if not verdict.settle:
        return ResolutionView(
            id=guess.id,
            status=verdict.status,
            reason=verdict.reason,
            seconds_left=verdict.seconds_left,
        )
    return _settle(guess, verdict, now)
