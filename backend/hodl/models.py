from datetime import datetime, timezone
import uuid

from hodl import db

DIRECTION_UP = 'up'
DIRECTION_DOWN = 'down'
DIRECTIONS = (DIRECTION_UP, DIRECTION_DOWN)

STATUS_PENDING = 'pending'
STATUS_RESOLVED = 'resolved'

OUTCOME_CORRECT = 'correct'
OUTCOME_WRONG = 'wrong'


def utcnow() -> datetime:
    """Naive UTC timestamp; every datetime column stores naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def isoformat_z(value):
    if value is None:
        return None
    return value.replace(microsecond=0).isoformat() + 'Z'


def price_out(value):
    """JSON-friendly price; values are quantized before they get here."""
    return float(value) if value is not None else None


def _new_guess_id() -> str:
    return uuid.uuid4().hex


class Player(db.Model):
    __tablename__ = 'player'
    id = db.Column(db.String(64), primary_key=True)
    score = db.Column(db.Integer, nullable=False, default=0)
    last_seen = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'score': self.score,
            'last_seen': isoformat_z(self.last_seen),
            'created_at': isoformat_z(self.created_at),
        }


class Guess(db.Model):
    __tablename__ = 'guess'
    id = db.Column(db.String(32), primary_key=True, default=_new_guess_id)
    player_id = db.Column(db.String(64), db.ForeignKey('player.id'), nullable=False)
    direction = db.Column(db.String(8), nullable=False)
    price_at_guess = db.Column(db.Numeric(20, 8), nullable=False)
    guessed_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    resolved_at = db.Column(db.DateTime, nullable=True)
    price_at_resolve = db.Column(db.Numeric(20, 8), nullable=True)
    outcome = db.Column(db.String(16), nullable=True)
    status = db.Column(db.String(16), nullable=False, default=STATUS_PENDING)

    __table_args__ = (
        db.CheckConstraint("direction IN ('up', 'down')", name='ck_guess_direction'),
        db.CheckConstraint("status IN ('pending', 'resolved')", name='ck_guess_status'),
        db.CheckConstraint("outcome IS NULL OR outcome IN ('correct', 'wrong')", name='ck_guess_outcome'),
        # Session restore looks up the in-flight guess by player
        db.Index('idx_guesses_player_status', 'player_id', 'status'),
        # At most one pending guess per player
        db.Index(
            'uq_guess_one_pending_per_player',
            'player_id',
            unique=True,
            sqlite_where=db.text("status = 'pending'"),
            postgresql_where=db.text("status = 'pending'"),
        ),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'player_id': self.player_id,
            'direction': self.direction,
            'price_at_guess': price_out(self.price_at_guess),
            'guessed_at': isoformat_z(self.guessed_at),
            'resolved_at': isoformat_z(self.resolved_at),
            'price_at_resolve': price_out(self.price_at_resolve),
            'outcome': self.outcome,
            'status': self.status,
        }


class PriceFeed(db.Model):
    """Single-slot live price, one row per tracked asset."""
    __tablename__ = 'price_feed'
    k = db.Column(db.String(16), primary_key=True)
    usd = db.Column(db.Numeric(20, 8), nullable=False, default=0)
    ts = db.Column(db.DateTime, nullable=True)
    source = db.Column(db.String(32), nullable=True)
