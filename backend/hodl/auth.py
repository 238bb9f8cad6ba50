"""Shared-secret authentication.

Browsers never talk to this API directly: the frontend's server routes proxy
every call and attach ``x-api-secret``. The configured secret is bcrypt-hashed
once per app and each presented value is checked against that hash, so the
comparison time does not depend on how much of the secret matched.
"""
from flask import current_app, jsonify
from flask_login import UserMixin

from hodl import bcrypt, login_manager

API_SECRET_HEADER = 'x-api-secret'
_HASH_KEY = 'hodl.api_secret_hash'


class ServiceClient(UserMixin):
    """The authenticated caller: whoever holds the shared secret."""
    id = 'proxy'


def _secret_hash():
    hashed = current_app.extensions.get(_HASH_KEY)
    if hashed is None:
        hashed = bcrypt.generate_password_hash(current_app.config['API_SECRET'])
        current_app.extensions[_HASH_KEY] = hashed
    return hashed


def check_api_secret(provided) -> bool:
    if not provided:
        return False
    return bcrypt.check_password_hash(_secret_hash(), provided)


@login_manager.request_loader
def load_client_from_request(req):
    if check_api_secret(req.headers.get(API_SECRET_HEADER, '')):
        return ServiceClient()
    return None


@login_manager.unauthorized_handler
def unauthorized():
    return jsonify({'error': 'Unauthorized'}), 401
