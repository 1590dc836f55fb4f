from functools import wraps
from flask import g, jsonify
from security.session import bearer_token_from_request, get_session_for_token
from models import db
from models.user import User

def user_for_token(raw_token):
    """Resolve a raw bearer token to (session, user); (None, None) when it is not usable."""
    sess = get_session_for_token(raw_token)
    if not sess:
        return None, None
    user = db.session.get(User, sess.user_id)
    if user is None:
        return None, None
    return sess, user

def load_current_user():
    g.session, g.user = user_for_token(bearer_token_from_request())

def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if getattr(g, "user", None) is None:
            return jsonify(error="Authentication required"), 401
        return fn(*args, **kwargs)
    return wrapper
