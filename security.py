"""
Password hashing and access tokens.
"""
import hashlib
import hmac
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import jwt, JWTError
from passlib.context import CryptContext

from config import JWT_SECRET, JWT_ALG, TOKEN_EXPIRE_MIN
from schemas import HashedCredential, LegacyCredential, PlaintextCredential

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# parameters of the scrypt "hexdigest.salt" strings in older user files
LEGACY_SCRYPT_N = 16384
LEGACY_SCRYPT_R = 8
LEGACY_SCRYPT_P = 1
LEGACY_KEY_LEN = 64


def hash_password(password: str) -> HashedCredential:
    return HashedCredential(hash=pwd_context.hash(password))


def _verify_legacy(plain: str, stored: str) -> bool:
    digest_hex, _, salt = stored.partition(".")
    try:
        expected = bytes.fromhex(digest_hex)
    except ValueError:
        return False
    supplied = hashlib.scrypt(
        plain.encode("utf-8"),
        salt=salt.encode("utf-8"),
        n=LEGACY_SCRYPT_N,
        r=LEGACY_SCRYPT_R,
        p=LEGACY_SCRYPT_P,
        dklen=LEGACY_KEY_LEN,
    )
    return hmac.compare_digest(expected, supplied)


def verify_password(plain: str, credential) -> bool:
    # Plaintext credentials only exist before the startup migration runs
    if isinstance(credential, PlaintextCredential):
        return False
    if isinstance(credential, LegacyCredential):
        return _verify_legacy(plain, credential.hash)
    try:
        return pwd_context.verify(plain, credential.hash)
    except ValueError:
        return False


def needs_rehash(credential) -> bool:
    return not isinstance(credential, HashedCredential)


def create_access_token(data: dict, expires_minutes: int = TOKEN_EXPIRE_MIN) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + timedelta(minutes=expires_minutes)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, JWT_SECRET, algorithm=JWT_ALG)


def decode_access_token(token: str) -> Optional[dict]:
    """Return the token claims, or None if the token is invalid or expired."""
    try:
        return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALG])
    except JWTError:
        return None
