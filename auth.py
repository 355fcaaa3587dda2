import time
from typing import Optional

from itsdangerous import BadSignature, URLSafeSerializer

from config import get_settings
from errors import Unauthenticated

SESSION_COOKIE = "ledger_session"


def _serializer(salt: str) -> URLSafeSerializer:
    settings = get_settings()
    return URLSafeSerializer(settings.session_secret, salt=salt)


def issue_session_token(user_id: str, max_age_hours: int = 12) -> str:
    timestamp = int(time.time())
    token_data = {"u": user_id, "ts": timestamp, "exp": timestamp + max_age_hours * 3600}
    return _serializer("ledger-session").dumps(token_data)


def user_id_from_token(token: Optional[str]) -> str:
    if not token:
        raise Unauthenticated("Missing session")
    try:
        data = _serializer("ledger-session").loads(token)
    except BadSignature as exc:
        raise Unauthenticated("Invalid session") from exc
    if int(time.time()) > data.get("exp", 0):
        raise Unauthenticated("Session expired")
    user_id = data.get("u")
    if not user_id:
        raise Unauthenticated("Invalid session")
    return str(user_id)


def generate_csrf_token(user_id: str, max_age_hours: int = 2) -> str:
    timestamp = int(time.time())
    token_data = {"u": user_id, "ts": timestamp, "exp": timestamp + max_age_hours * 3600}
    return _serializer("csrf-token").dumps(token_data)


def validate_csrf_token(token: str, user_id: str) -> bool:
    try:
        data = _serializer("csrf-token").loads(token)
    except BadSignature:
        return False
    if data.get("u") != user_id:
        return False
    return int(time.time()) <= data.get("exp", 0)
