import time
from datetime import timedelta, datetime, timezone

from jose import jwt, JWTError

from chat_server.exception.UnauthorizedError import UnauthorizedError


class AuthSecurity:
    secret_key = None
    algorithm = 'HS256'
    # Defaults: access token valid for 7 days
    access_token_expire_minutes = 7 * 24 * 60

    @classmethod
    def configure(cls, secret_key, algorithm='HS256', access_token_expire_minutes=7*24*60):
        cls.secret_key = secret_key
        cls.algorithm = algorithm
        cls.access_token_expire_minutes = access_token_expire_minutes

    @classmethod
    def configure_from_config(cls):
        from config import config
        cls.configure(config.JWT_SECRET, config.JWT_ALGORITHM, config.ACCESS_TOKEN_EXPIRE_MINUTES)

    @classmethod
    def encode_token(cls, data: dict, expires_delta: timedelta = None) -> str:
        to_encode = data.copy()
        expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=cls.access_token_expire_minutes))
        to_encode.update({"exp": expire})
        return jwt.encode(to_encode, cls.secret_key, algorithm=cls.algorithm)

    @classmethod
    def decode_token(cls, token: str) -> dict:
        # Check for well-formed JWT (should have 2 dots)
        if not token or token.count('.') != 2:
            raise UnauthorizedError("Malformed or missing token. Please provide a valid JWT token in the Authorization header.")
        if not cls.secret_key:
            raise UnauthorizedError("Token verification is not configured on this server.")
        try:
            payload = jwt.decode(token, cls.secret_key, algorithms=[cls.algorithm])
        except JWTError as e:
            msg = str(e)
            if 'Signature has expired' in msg:
                raise UnauthorizedError("Token expired. Please login again or refresh your session.")
            elif 'Not enough segments' in msg or 'Invalid header string' in msg:
                raise UnauthorizedError("Malformed or missing token. Please provide a valid JWT token in the Authorization header.")
            elif 'Signature verification failed' in msg:
                raise UnauthorizedError("Invalid token signature. Please login again or contact support if the problem persists.")
            else:
                raise UnauthorizedError(f"Invalid token: {msg}. Please check your authentication and try again.")
        exp = payload.get('exp')
        if exp is not None and int(float(exp)) < int(time.time()):
            raise UnauthorizedError("Token expired. Please login again or refresh your session.")
        return payload

    @classmethod
    def user_id_from_payload(cls, payload: dict) -> str:
        """Resolve the acting user id from a decoded token payload."""
        user_id = payload.get('user_id') or payload.get('sub')
        if not user_id:
            raise UnauthorizedError('Token does not identify a user')
        return str(user_id)


def get_auth_payload(request):
    """
    Extracts and decodes the Bearer token from the Authorization header in the request.
    Raises UnauthorizedError if missing or invalid.
    Returns the decoded payload.
    """
    auth_header = request.headers.get('Authorization')
    if not auth_header or not auth_header.startswith('Bearer '):
        raise UnauthorizedError('Missing or invalid token')
    token = auth_header.split(' ', 1)[1]
    return AuthSecurity.decode_token(token)
