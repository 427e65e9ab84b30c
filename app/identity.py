import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt

from models import UserRole
from settings import settings

# Configuration JWT depuis settings (configurable via variables d'environnement)
SECRET_KEY = settings.SECRET_KEY
ALGORITHM = settings.JWT_ALGORITHM
ACCESS_TOKEN_EXPIRE_MINUTES = settings.ACCESS_TOKEN_EXPIRE_MINUTES

AUTH_REQUIRED_MESSAGE = "User authentication required. Please log in."

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9]")

# Le jeton est émis par /api/session après connexion via le widget OAuth
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="api/session", auto_error=False)


class IdentityRequiredError(Exception):
    """Aucun identifiant utilisateur (email ou nom) disponible."""


def sanitize_identifier(value: str) -> str:
    """Remplace chaque caractère hors [A-Za-z0-9] par '_'."""
    return _UNSAFE_CHARS.sub("_", value)


@dataclass(frozen=True)
class UserContext:
    """Identité de l'appelant, passée explicitement aux orchestrateurs."""

    email: Optional[str]
    name: Optional[str]
    role: UserRole = UserRole.USER

    @property
    def identifier(self) -> str:
        return self.email or self.name or ""

    @property
    def folder(self) -> str:
        return sanitize_identifier(self.identifier)

    @property
    def root_prefix(self) -> str:
        return f"{self.role.value}/{self.folder}/"


def build_user_context(email: Optional[str], name: Optional[str], role=None) -> UserContext:
    """Construit le contexte utilisateur; lève IdentityRequiredError sans email ni nom."""
    email = (email or "").strip() or None
    name = (name or "").strip() or None
    if not email and not name:
        raise IdentityRequiredError(AUTH_REQUIRED_MESSAGE)
    return UserContext(email=email, name=name, role=UserRole(role or UserRole.USER))


def create_access_token(user: UserContext, expires_delta: Optional[timedelta] = None) -> str:
    """Crée un token JWT portant l'identité"""
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode = {
        "sub": user.identifier,
        "email": user.email,
        "name": user.name,
        "role": user.role.value,
        "exp": expire,
    }
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def decode_access_token(token: str) -> UserContext:
    """Décode un token JWT; lève IdentityRequiredError s'il est invalide ou vide."""
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        raise IdentityRequiredError(AUTH_REQUIRED_MESSAGE)
    try:
        return build_user_context(payload.get("email"), payload.get("name"), payload.get("role"))
    except ValueError:
        # Rôle inconnu dans le token
        raise IdentityRequiredError(AUTH_REQUIRED_MESSAGE)


def get_user_context(token: Optional[str] = Depends(oauth2_scheme)) -> UserContext:
    """Dépendance FastAPI: identité de la requête courante"""
    try:
        if not token:
            raise IdentityRequiredError(AUTH_REQUIRED_MESSAGE)
        return decode_access_token(token)
    except IdentityRequiredError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )
