from datetime import datetime
from typing import List, Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from hodl import db
from hodl.errors import GuessInProgress, PriceUnavailable
from hodl.models import DIRECTION_DOWN, DIRECTION_UP, STATUS_PENDING, Guess, utcnow
from hodl.services.prices.store import get_price

_DIRECTION_ALIASES = {
    'up': DIRECTION_UP,
    'rise': DIRECTION_UP,
    'hodl': DIRECTION_UP,
    'down': DIRECTION_DOWN,
    'fall': DIRECTION_DOWN,
    'fold': DIRECTION_DOWN,
}


def parse_direction(value) -> str:
    if not isinstance(value, str) or value.strip().lower() not in _DIRECTION_ALIASES:
        raise ValueError("direction must be 'up' or 'down'")
    return _DIRECTION_ALIASES[value.strip().lower()]


def get_guess(guess_id: str) -> Optional[Guess]:
    return db.session.get(Guess, guess_id)


def pending_guess_for(player_id: str) -> Optional[Guess]:
    return Guess.query.filter_by(player_id=player_id, status=STATUS_PENDING).first()


def recent_guesses(player_id: str, limit: int = 20) -> List[Guess]:
    return (
        Guess.query.filter_by(player_id=player_id)
        .order_by(Guess.guessed_at.desc())
        .limit(limit)
        .all()
    )


def submit_guess(player_id: str, direction: str, now: Optional[datetime] = None) -> Guess:
    """Open a round for the player at the stored price.

    The entry price only ever comes from the price store. The partial unique
    index on pending guesses is what actually keeps a player to one open
    round; the lookup up front just answers the common case cheaply.
    """
    from .registry import touch

    direction = parse_direction(direction)
    now = now or utcnow()
    view = touch(player_id, now)
    if view.pending_guess is not None:
        raise GuessInProgress(view.pending_guess.id)

    sample = get_price()
    if sample is None:
        raise PriceUnavailable('Price unavailable, try again shortly')

    guess = Guess(
        player_id=player_id,
        direction=direction,
        price_at_guess=sample.usd,
        guessed_at=now,
        status=STATUS_PENDING,
    )
    db.session.add(guess)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        existing = pending_guess_for(player_id)
        if existing is None:
            raise
        raise GuessInProgress(existing.id)
    current_app.logger.info(
        f"[guess-submit] guess={guess.id} player={player_id} direction={direction} price={sample.usd}"
    )
    return guess
