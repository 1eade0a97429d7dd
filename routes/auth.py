from functools import wraps
from flask import request, g
from database import db
from exceptions import AuthenticationError, PermissionDeniedError

def get_bearer_token():
    """Extract the bearer token from the Authorization header"""
    auth_header = request.headers.get('Authorization', '')
    if not auth_header.startswith('Bearer '):
        return None
    return auth_header[len('Bearer '):].strip() or None

def verify_request_auth(require_admin=False):
    """Identify the caller and check their role.

    Returns {'user': ..., 'profile': ...} for an approved user (and, when
    `require_admin` is set, an admin); raises otherwise.
    """
    token = get_bearer_token()
    if not token:
        raise AuthenticationError('Missing or invalid authorization header')

    user = db.get_user_for_token(token)
    if not user:
        raise AuthenticationError('Invalid token')

    profile = db.get_user_profile(user['id'])
    if not profile:
        raise AuthenticationError('User profile not found')

    if profile.get('status') != 'approved':
        raise PermissionDeniedError('User account not approved')
    if require_admin and profile.get('role') != 'admin':
        raise PermissionDeniedError('Admin access required')

    return {'user': user, 'profile': profile}

def login_required(f):
    """Decorator to require an approved user"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        g.current_user = verify_request_auth()
        return f(*args, **kwargs)
    return decorated_function

def admin_required(f):
    """Decorator to require an approved admin"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        g.current_user = verify_request_auth(require_admin=True)
        return f(*args, **kwargs)
    return decorated_function

def get_current_user():
    """Get the identity verified for this request"""
    return g.get('current_user')

def current_user_id():
    identity = get_current_user()
    return identity['user']['id'] if identity else None
