"""Caller identity.

Sign-in happens at the identity provider; by the time a request reaches us
the provider's subject sits in the ``USER_ID_HEADER`` header. Admins are the
users whose email is on ``ADMIN_EMAIL_ALLOWLIST``.
"""
from functools import wraps
from flask import current_app, request, jsonify
from flask_login import current_user
from buzzmaster.errors import AuthError, ForbiddenError


def caller_subject():
    return request.headers.get(current_app.config.get('USER_ID_HEADER', 'X-User-Id'))


def init_auth(login_manager):
    from buzzmaster import db
    from buzzmaster.models import User

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    @login_manager.request_loader
    def load_user_from_request(req):
        subject = caller_subject()
        if not subject:
            return None
        return User.query.filter_by(external_id=subject).first()

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({'error': 'Unauthorized'}), 401


def is_admin(email):
    return bool(email) and email in current_app.config.get('ADMIN_EMAIL_ALLOWLIST', [])


def admin_required(view):
    @wraps(view)
    def wrapped(*args, **kwargs):
        if not current_app.config.get('DEV_MODE'):
            if not current_user.is_authenticated:
                raise AuthError('Unauthorized')
            if not is_admin(current_user.email):
                raise ForbiddenError('Forbidden')
        return view(*args, **kwargs)
    return wrapped
