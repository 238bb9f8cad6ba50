from flask import request
from flask_socketio import emit, join_room, leave_room

from hodl import socketio
from hodl.auth import API_SECRET_HEADER, check_api_secret
from hodl.services.prices.broadcaster import NAMESPACE, PRICE_ROOM
from hodl.services.prices.store import get_price


def handle_connect(auth=None):
    provided = auth.get('apiSecret') if isinstance(auth, dict) else None
    provided = provided or request.headers.get(API_SECRET_HEADER, '')
    if not check_api_secret(provided):
        # Refuses the connection
        return False
    emit('connected', {'message': f'Connected to {NAMESPACE}'})


def handle_subscribe_price(data=None):
    join_room(PRICE_ROOM)
    emit('subscribed', {'room': PRICE_ROOM})
    # Send the current value right away instead of waiting a broadcast tick
    sample = get_price()
    if sample is not None:
        emit('price_update', sample.to_dict())


def handle_unsubscribe_price(data=None):
    leave_room(PRICE_ROOM)
    emit('unsubscribed', {'room': PRICE_ROOM})


def handle_ping(data=None):
    emit('pong', data or {})


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    namespaces = [NAMESPACE, '/'] if testing else [NAMESPACE]
    for namespace in namespaces:
        socketio.on_event('connect', handle_connect, namespace=namespace)
        socketio.on_event('subscribe_price', handle_subscribe_price, namespace=namespace)
        socketio.on_event('unsubscribe_price', handle_unsubscribe_price, namespace=namespace)
        socketio.on_event('ping', handle_ping, namespace=namespace)
