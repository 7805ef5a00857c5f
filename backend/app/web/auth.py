from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request, status
from itsdangerous import BadSignature, URLSafeTimedSerializer

from backend.app.core.config import settings

ROLE_ADMIN = "admin"
ROLE_USER = "user"


@dataclass(frozen=True)
class Identity:
    user_id: int
    role: str
    username: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


def get_serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(settings.token_secret, salt="api-token")


def issue_token(user_id: int, *, role: str = ROLE_USER, username: str | None = None) -> str:
    serializer = get_serializer()
    return serializer.dumps({"uid": user_id, "role": role, "un": username})


def _read_token(request: Request) -> str | None:
    header = request.headers.get("authorization")
    if not header:
        return None
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)
    return token.strip()


def _decode(token: str) -> Identity:
    serializer = get_serializer()
    try:
        data = serializer.loads(token, max_age=settings.token_max_age_seconds)
    except BadSignature as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED) from exc
    try:
        user_id = int(data["uid"])
    except (KeyError, TypeError, ValueError) as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED) from exc
    role = data.get("role") if data.get("role") in {ROLE_ADMIN, ROLE_USER} else ROLE_USER
    return Identity(user_id=user_id, role=role, username=data.get("un"))


def get_optional_identity(request: Request) -> Identity | None:
    token = _read_token(request)
    if token is None:
        return None
    return _decode(token)


def get_identity(identity: Identity | None = Depends(get_optional_identity)) -> Identity:
    if identity is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)
    return identity


def require_admin(identity: Identity = Depends(get_identity)) -> Identity:
    if not identity.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)
    return identity
