from jose import JWTError, jwt
from datetime import datetime, timedelta, timezone
from typing import Optional
from tikoyangu.core.config import settings
from tikoyangu.core.errors import Forbidden


ADMIN_ROLE = 'admin'
ORGANIZER_ROLE = 'organizer'


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=60))
    to_encode.update({'exp': expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)





def decode_access_token(token: str) -> Optional[dict]:
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        return payload
    except JWTError:
        return None





def is_admin(user: dict) -> bool:
    return user.get('role') == ADMIN_ROLE


def ensure_event_access(user: dict, event) -> None:
    """Admins may act on any event, organizers only on their own."""
    if is_admin(user):
        return
    if user.get('id') is not None and event is not None and int(user['id']) == int(event.organizer_id):
        return
    raise Forbidden('Not allowed')
