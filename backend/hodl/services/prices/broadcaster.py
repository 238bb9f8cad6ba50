from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from hodl import db, socketio
from .store import PriceSample, get_price

NAMESPACE = '/ws'
PRICE_ROOM = 'price'


def broadcast_latest_price() -> Optional[PriceSample]:
    """Push the stored price to every subscribed socket; skip the tick if there is none."""
    sample = get_price()
    if sample is not None:
        socketio.emit('price_update', sample.to_dict(), to=PRICE_ROOM, namespace=NAMESPACE)
    return sample


def start_price_broadcaster(app) -> None:
    interval = float(app.config.get('PRICE_BROADCAST_INTERVAL_SEC', 1))

    def _worker():
        app.logger.info(f"[broadcaster-start] interval={interval}s room={PRICE_ROOM}")
        while True:
            with app.app_context():
                try:
                    broadcast_latest_price()
                except SQLAlchemyError:
                    db.session.rollback()
                    app.logger.exception('[broadcaster-read-failed]')
            socketio.sleep(interval)

    socketio.start_background_task(_worker)
