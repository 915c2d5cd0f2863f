"""Identity boundary: verify provider-issued tokens and map them to users.

Tokens are minted by the external identity provider; this module only
verifies them (PyJWT) and keeps a local ``User`` row in sync so matches and
solutions can reference participants.
"""

import logging

import jwt
from flask import current_app, request

from codeduel import db, login_manager
from codeduel.errors import AuthInvalid, AuthMissing
from codeduel.models import User, save

logger = logging.getLogger(__name__)


def verify_token(token):
    """Return the claims of a valid token; raise AuthMissing/AuthInvalid."""
    if not token:
        raise AuthMissing()
    try:
        claims = jwt.decode(
            token,
            current_app.config['JWT_SECRET'],
            algorithms=current_app.config.get('JWT_ALGORITHMS', ['HS256']),
        )
    except jwt.PyJWTError as exc:
        logger.info(f"[auth-reject] reason={exc.__class__.__name__}")
        raise AuthInvalid() from exc
    participant_id = claims.get('sub') or claims.get('id')
    if not participant_id:
        raise AuthInvalid('Token carries no subject')
    return claims


def display_name(claims):
    name = claims.get('name') or claims.get('username')
    if not name and claims.get('email'):
        name = claims['email'].split('@')[0]
    return name or 'Anonymous'


def sync_user(claims):
    """Create or refresh the local user for the given identity claims."""
    participant_id = str(claims.get('sub') or claims.get('id'))
    user = db.session.get(User, participant_id)
    if user is None:
        user = User(id=participant_id, username=display_name(claims), email=claims.get('email'))
        save(user)
        logger.info(f"[auth-sync] created user={participant_id}")
    elif claims.get('name') and user.username != claims['name']:
        user.username = claims['name']
        save(user)
    return user


def token_from_request(req):
    header = req.headers.get('Authorization', '')
    if header.startswith('Bearer '):
        return header[len('Bearer '):].strip()
    return req.cookies.get('access_token')


def participant_from_handshake(auth, args):
    """Resolve the participant id for a channel handshake.

    A token (``auth['token']`` or ``?token=``) wins and must verify; otherwise
    the bare ``userId`` connection parameter identifies the participant.
    """
    auth = auth if isinstance(auth, dict) else {}
    token = auth.get('token') or args.get('token')
    if token:
        claims = verify_token(token)
        return str(claims.get('sub') or claims.get('id'))
    participant_id = auth.get('userId') or args.get('userId')
    if not participant_id:
        raise AuthMissing('userId is required')
    return str(participant_id)


@login_manager.user_loader
def load_user(user_id):
    # A presented token decides identity, even over a logged-in session
    if token_from_request(request):
        return None
    return db.session.get(User, user_id)


@login_manager.request_loader
def load_user_from_request(req):
    token = token_from_request(req)
    if not token:
        return None
    try:
        return sync_user(verify_token(token))
    except (AuthMissing, AuthInvalid):
        return None


@login_manager.unauthorized_handler
def unauthorized():
    if token_from_request(request):
        raise AuthInvalid()
    raise AuthMissing()
