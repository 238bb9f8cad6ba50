from flask import Blueprint, current_app, jsonify
from flask_login import login_required

from hodl.services.prices.store import get_price
from hodl.services.rounds.registry import active_count

main = Blueprint('main', __name__)


@main.route('/')
@login_required
def index():
    return jsonify({'message': 'Welcome to the HODL or FOLD game server!'})


@main.route('/health')
@login_required
def health():
    return jsonify({
        'status': 'ok',
        'activeUsers': active_count(),
        'maxUsers': int(current_app.config.get('MAX_PLAYERS', 100)),
        'priceAvailable': get_price() is not None,
    })


@main.route('/price')
@login_required
def price():
    """Latest stored price; never calls an upstream source."""
    sample = get_price()
    if sample is None:
        return jsonify({'error': 'Price unavailable', 'unavailable': True}), 503
    return jsonify(sample.to_dict())
