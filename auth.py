from typing import Optional

import bcrypt
from itsdangerous import BadSignature, URLSafeTimedSerializer

from config import get_settings

CSRF_MAX_AGE_SECS = 2 * 3600


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed_password: str) -> bool:
    try:
        return bcrypt.checkpw(
            password.encode("utf-8"), hashed_password.encode("utf-8")
        )
    except ValueError:
        return False


def _session_serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(settings.secret_key, salt="session")


def _csrf_serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(settings.secret_key, salt="csrf-token")


def issue_session_token(user_id: int) -> str:
    return _session_serializer().dumps({"u": user_id})


def read_session_token(token: Optional[str]) -> Optional[int]:
    if not token:
        return None
    settings = get_settings()
    try:
        data = _session_serializer().loads(
            token, max_age=settings.session_max_age_secs
        )
    except BadSignature:
        # SignatureExpired is a BadSignature too.
        return None
    user_id = data.get("u") if isinstance(data, dict) else None
    return user_id if isinstance(user_id, int) else None


def generate_csrf_token(user_id: int) -> str:
    return _csrf_serializer().dumps({"u": user_id})


def validate_csrf_token(
    token: Optional[str], user_id: int, max_age_secs: int = CSRF_MAX_AGE_SECS
) -> bool:
    """Accept only an unexpired token issued for this same user."""
    if not token:
        return False
    try:
        data = _csrf_serializer().loads(token, max_age=max_age_secs)
    except BadSignature:
        return False
    return isinstance(data, dict) and data.get("u") == user_id
