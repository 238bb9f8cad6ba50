from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from hodl import db
from hodl.errors import AtCapacity
from hodl.models import Guess, Player, utcnow
from .ledger import pending_guess_for

MAX_PLAYER_ID_LENGTH = 64


@dataclass
class PlayerView:
    id: str
    score: int
    pending_guess: Optional[Guess] = None

    def to_dict(self):
        return {
            'id': self.id,
            'score': self.score,
            'pendingGuess': self.pending_guess.to_dict() if self.pending_guess else None,
        }


def validate_player_id(player_id) -> str:
    if not isinstance(player_id, str) or not player_id.strip():
        raise ValueError('Missing or invalid player id')
    player_id = player_id.strip()
    if len(player_id) > MAX_PLAYER_ID_LENGTH:
        raise ValueError(f'Player id longer than {MAX_PLAYER_ID_LENGTH} characters')
    return player_id


def _active_cutoff(now: datetime) -> datetime:
    hours = int(current_app.config.get('ACTIVE_WINDOW_HOURS', 24))
    return now - timedelta(hours=hours)


def active_count(now: Optional[datetime] = None, exclude_id: Optional[str] = None) -> int:
    cutoff = _active_cutoff(now or utcnow())
    stmt = db.select(db.func.count()).select_from(Player).where(Player.last_seen > cutoff)
    if exclude_id is not None:
        stmt = stmt.where(Player.id != exclude_id)
    return int(db.session.scalar(stmt) or 0)


def _get_or_create(player_id: str, now: datetime) -> Player:
    player = db.session.get(Player, player_id)
    if player is None:
        db.session.add(Player(id=player_id, score=0, last_seen=now, created_at=now))
        try:
            db.session.commit()
        except IntegrityError:
            # Same id created concurrently; fall through to the refresh below
            db.session.rollback()
        else:
            current_app.logger.info(f"[player-created] player={player_id}")
            return db.session.get(Player, player_id)
        player = db.session.get(Player, player_id)
    player.last_seen = now
    db.session.commit()
    return player


def _view(player: Player) -> PlayerView:
    return PlayerView(id=player.id, score=player.score, pending_guess=pending_guess_for(player.id))


def admit_or_refresh(player_id: str, now: Optional[datetime] = None) -> PlayerView:
    """Capacity-gated get-or-create used when a session starts.

    A player already inside the active window is never turned away; anyone
    else is rejected once the window holds MAX_PLAYERS others.
    """
    now = now or utcnow()
    max_players = int(current_app.config.get('MAX_PLAYERS', 100))
    existing = db.session.get(Player, player_id)
    already_active = existing is not None and existing.last_seen > _active_cutoff(now)
    if not already_active:
        active = active_count(now, exclude_id=player_id)
        if active >= max_players:
            current_app.logger.info(f"[capacity-reject] player={player_id} active={active} max={max_players}")
            raise AtCapacity(active, max_players)
    return _view(_get_or_create(player_id, now))


def touch(player_id: str, now: Optional[datetime] = None) -> PlayerView:
    """Get-or-create without capacity gating; refreshes last_seen."""
    return _view(_get_or_create(player_id, now or utcnow()))


def apply_score_delta(player_id: str, delta: int, now: Optional[datetime] = None) -> None:
    """Adjust the score in SQL so concurrent deltas never overwrite each other.

    Runs inside the caller's transaction; the caller commits.
    """
    db.session.execute(
        db.update(Player)
        .where(Player.id == player_id)
        .values(score=Player.score + delta, last_seen=now or utcnow())
        .execution_options(synchronize_session=False)
    )


def current_score(player_id: str) -> Optional[int]:
    return db.session.scalar(db.select(Player.score).where(Player.id == player_id))
