"""Software licence: key codec, licence store and the licence gate decision"""
import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from jose import JWTError
from sqlalchemy.orm import Session

from medicab.models import License

logger = logging.getLogger(__name__)

ZERO_IV = bytes(16)
KEY_SEPARATOR = "|"
ADMIN_GRADE = "admin"


# ----------------------------
# Key codec
# ----------------------------
def _cipher(secret: str) -> Cipher:
    return Cipher(algorithms.AES(secret.encode("utf-8")), modes.CBC(ZERO_IV))


def encrypt_licence_key(plaintext: str, secret: str) -> str:
    """AES-256-CBC (zero IV, PKCS7) encrypt, hex encoded."""
    padder = padding.PKCS7(algorithms.AES.block_size).padder()
    data = padder.update(plaintext.encode("utf-8")) + padder.finalize()
    encryptor = _cipher(secret).encryptor()
    return (encryptor.update(data) + encryptor.finalize()).hex()


def decrypt_licence_key(key: str, secret: str) -> str:
    """Inverse of encrypt_licence_key. Raises ValueError on any malformed key."""
    raw = bytes.fromhex(key.strip())
    if not raw or len(raw) % 16:
        raise ValueError("licence key length is not a multiple of the block size")

    decryptor = _cipher(secret).decryptor()
    data = decryptor.update(raw) + decryptor.finalize()
    unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
    plain = unpadder.update(data) + unpadder.finalize()
    return plain.decode("utf-8")


def build_licence_key(start: date, expiry: date, secret: str) -> str:
    return encrypt_licence_key(f"{start.isoformat()}{KEY_SEPARATOR}{expiry.isoformat()}", secret)


def parse_licence_key(key: str, secret: str) -> Tuple[date, date]:
    """Decrypt a key into its (start_date, expiry_date) pair."""
    if not key:
        raise ValueError("empty licence key")

    plaintext = decrypt_licence_key(key, secret)
    parts = plaintext.split(KEY_SEPARATOR)
    if len(parts) != 2:
        raise ValueError("licence key payload must be '<start>|<expiry>'")

    start, expiry = (date.fromisoformat(part.strip()[:10]) for part in parts)
    if expiry < start:
        raise ValueError("licence expiry precedes its start date")
    return start, expiry


# ----------------------------
# Licence store
# ----------------------------
def latest_licence(db: Session) -> Optional[License]:
    """Most recently registered licence; older rows are history."""
    return db.query(License).order_by(License.id.desc()).first()


def register_licence(db: Session, key: str, secret: str) -> License:
    """Store a new licence row. Earlier rows are kept and simply shadowed."""
    start, expiry = parse_licence_key(key, secret)
    licence = License(start_date=start, expiry_date=expiry, key_value=key.strip())
    db.add(licence)
    db.commit()
    db.refresh(licence)
    logger.info(f"Licence {licence.id} registered: {start} -> {expiry}")
    return licence


def is_expired(licence: License, now: Optional[datetime] = None) -> bool:
    """Expired once the current time is past midnight UTC of the expiry date."""
    now = now or datetime.now(timezone.utc)
    expiry = datetime.combine(licence.expiry_date, time.min, tzinfo=timezone.utc)
    return now > expiry


# ----------------------------
# Licence gate
# ----------------------------
class GateState(Enum):
    NO_TOKEN = "no_token"
    TOKEN_INVALID_OR_EXPIRED = "token_invalid_or_expired"
    TOKEN_VALID_ADMIN = "token_valid_admin"
    TOKEN_VALID_NON_ADMIN = "token_valid_non_admin"


NOT_ACTIVATED = "Application not activated"
LICENCE_EXPIRED = "License expired"


@dataclass
class GateDecision:
    state: GateState
    admitted: bool
    reason: Optional[str] = None


def classify_token(token: Optional[str], inspect: Callable[[str], Dict[str, Any]]) -> GateState:
    if not token:
        return GateState.NO_TOKEN
    try:
        payload = inspect(token)
    except JWTError as e:
        logger.debug(f"Licence gate could not decode token: {e}")
        return GateState.TOKEN_INVALID_OR_EXPIRED
    if payload.get("grade") == ADMIN_GRADE:
        return GateState.TOKEN_VALID_ADMIN
    return GateState.TOKEN_VALID_NON_ADMIN


def evaluate_gate(
    token: Optional[str],
    inspect: Callable[[str], Dict[str, Any]],
    load_licence: Callable[[], Optional[License]],
    now: Optional[datetime] = None,
) -> GateDecision:
    """Decide whether a request may reach the licensed business routes.

    `inspect` decodes a token checking its signature but not its expiry.
    Admin tokens are admitted without looking at the licence table, so an
    administrator can always renew an expired licence. Everybody else
    (anonymous, bad token, non-admin) needs a current licence.
    `load_licence` is only called when the licence has to be checked.
    """
    state = classify_token(token, inspect)
    if state is GateState.TOKEN_VALID_ADMIN:
        return GateDecision(state=state, admitted=True)

    licence = load_licence()
    if licence is None:
        return GateDecision(state=state, admitted=False, reason=NOT_ACTIVATED)
    if is_expired(licence, now):
        return GateDecision(state=state, admitted=False, reason=LICENCE_EXPIRED)
    return GateDecision(state=state, admitted=True)
