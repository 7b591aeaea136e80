"""Secret hashing and session token helpers."""
import base64
import hashlib
import os
import secrets

from cryptography.exceptions import InvalidKey
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

SCRYPT_N = 2**14
SCRYPT_R = 8
SCRYPT_P = 1
SALT_BYTES = 16
KEY_BYTES = 32


def _kdf(salt: bytes) -> Scrypt:
    return Scrypt(salt=salt, length=KEY_BYTES, n=SCRYPT_N, r=SCRYPT_R, p=SCRYPT_P)


def hash_secret(secret: str) -> str:
    salt = os.urandom(SALT_BYTES)
    derived = _kdf(salt).derive(secret.encode("utf-8"))
    return "scrypt${}${}".format(
        base64.b64encode(salt).decode(), base64.b64encode(derived).decode()
    )


def verify_secret(secret: str, encoded: str) -> bool:
    try:
        scheme, salt_b64, hash_b64 = encoded.split("$")
    except ValueError:
        return False
    if scheme != "scrypt":
        return False
    try:
        _kdf(base64.b64decode(salt_b64)).verify(
            secret.encode("utf-8"), base64.b64decode(hash_b64)
        )
    except InvalidKey:
        return False
    return True


# Burned on unknown identifiers so both failure paths cost one KDF run.
DUMMY_SECRET_HASH = hash_secret("rlsguard-dummy-secret")


def new_session_token() -> str:
    return secrets.token_urlsafe(32)


def token_digest(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
