from datetime import datetime, timedelta, timezone

import jwt

from clinic_booking.core import config


def create_access_token(
    subject: str,
    role: str | None = None,
    practice_id: int | None = None,
    expires_minutes: int | None = None,
) -> str:
    issued_at = datetime.now(timezone.utc)
    expire = issued_at + timedelta(minutes=expires_minutes or config.JWT_EXPIRES_MINUTES)
    payload = {"sub": subject, "exp": expire, "iat": issued_at}
    if role:
        payload["role"] = role
    if practice_id is not None:
        payload["practice_id"] = practice_id
    return jwt.encode(payload, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict:
    return jwt.decode(token, config.JWT_SECRET_KEY, algorithms=[config.JWT_ALGORITHM])
