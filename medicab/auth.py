"""Authentication: password hashing, session tokens, token and role guards"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from fastapi import Depends, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from medicab.database import get_db
from medicab.errors import AuthError, DatabaseError, LicenseError
from medicab.models import User
from medicab.services.licensing import GateDecision, evaluate_gate, latest_licence

app_logger = logging.getLogger("medicab.app")
audit_logger = logging.getLogger("medicab.audit")

ADMIN_ROLE = "admin"
CLINICIAN_ROLE = "clinician"
VALID_ROLES = [ADMIN_ROLE, CLINICIAN_ROLE, "user"]

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

# auto_error=False: a missing header must give our own 401 body, and the
# licence gate has to see anonymous requests too
bearer_scheme = HTTPBearer(auto_error=False)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


class TokenService:
    """Issues and checks signed session tokens.

    Payload is {"user": <id>, "grade": <role>, "iat", "exp"}. Tokens are not
    stored server side: a token stays valid for its whole lifetime even if the
    user's role or the licence changes afterwards.
    """

    def __init__(self, secret: str, algorithm: str = "HS256", lifetime: timedelta = timedelta(hours=6)):
        if not secret:
            raise ValueError("a token secret is required")
        self.secret = secret
        self.algorithm = algorithm
        self.lifetime = lifetime

    def issue(self, user_id: int, role: Optional[str], expires_delta: Optional[timedelta] = None) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "user": user_id,
            "grade": role or "user",
            "iat": now,
            "exp": now + (expires_delta if expires_delta is not None else self.lifetime),
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def verify(self, token: str) -> Dict[str, Any]:
        """Full verification: signature and expiry. Raises JWTError."""
        return jwt.decode(token, self.secret, algorithms=[self.algorithm])

    def inspect(self, token: str) -> Dict[str, Any]:
        """Signature check only; an expired token still decodes.

        Only the licence gate uses this, to read the role of the caller.
        """
        return jwt.decode(
            token,
            self.secret,
            algorithms=[self.algorithm],
            options={"verify_exp": False},
        )


@dataclass
class TokenIdentity:
    user_id: int
    grade: str


def get_token_service(request: Request) -> TokenService:
    return request.app.state.tokens


def bearer_token(credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    if not credentials or credentials.scheme.lower() != "bearer":
        return None
    return credentials.credentials or None


def authenticate_user(db: Session, username: str, password: str) -> Optional[User]:
    user = db.query(User).filter(User.username == username).first()
    if not user or not verify_password(password, user.password_hash):
        return None

    user.last_login = datetime.now(timezone.utc)
    db.commit()
    return user


def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    tokens: TokenService = Depends(get_token_service),
) -> TokenIdentity:
    """Standard token verifier for protected routes."""
    token = bearer_token(credentials)
    if not token:
        raise AuthError("Missing token", status_code=status.HTTP_401_UNAUTHORIZED)

    try:
        payload = tokens.verify(token)
    except JWTError:
        raise AuthError("Invalid token")

    if payload.get("user") is None:
        raise AuthError("Invalid token")

    identity = TokenIdentity(user_id=payload["user"], grade=payload.get("grade") or "user")
    request.state.user = identity
    return identity


def licence_gate(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    tokens: TokenService = Depends(get_token_service),
    db: Session = Depends(get_db),
) -> GateDecision:
    """Licence gate placed in front of every business router."""

    def load_licence():
        try:
            return latest_licence(db)
        except SQLAlchemyError as e:
            app_logger.error(f"Licence lookup failed: {e}")
            raise DatabaseError("Database error")

    decision = evaluate_gate(bearer_token(credentials), tokens.inspect, load_licence)
    if not decision.admitted:
        audit_logger.info(
            f"Licence gate blocked {request.method} {request.url.path} state={decision.state.value} reason={decision.reason}"
        )
        raise LicenseError(decision.reason)
    return decision


def require_roles(*allowed: str, error: str = "Insufficient permissions."):
    """Role gate: build a dependency admitting only the given grades."""
    allowed_roles = list(allowed)

    def role_gate(current_user: TokenIdentity = Depends(get_current_user)) -> TokenIdentity:
        if current_user.grade not in allowed_roles:
            audit_logger.info(
                f"Role gate rejected user={current_user.user_id} grade={current_user.grade} required={allowed_roles}"
            )
            raise AuthError({
                "error": error,
                "required": allowed_roles[0] if len(allowed_roles) == 1 else allowed_roles,
                "current": current_user.grade,
            })
        return current_user

    return role_gate


get_admin = require_roles(ADMIN_ROLE, error="Admin access required.")
get_admin_or_clinician = require_roles(ADMIN_ROLE, CLINICIAN_ROLE, error="Admin or clinician access required.")
