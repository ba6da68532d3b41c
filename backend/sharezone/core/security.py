import hashlib
import hmac
import secrets
from dataclasses import dataclass
from typing import Optional

import bcrypt

from sharezone.core.config import settings

# bcrypt only reads the first 72 bytes of a password
BCRYPT_MAX_BYTES = 72


def _password_bytes(password: str) -> bytes:
    return password.encode("utf-8")[:BCRYPT_MAX_BYTES]


def get_password_hash(password: str) -> str:
    salt = bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)
    return bcrypt.hashpw(_password_bytes(password), salt).decode("ascii")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        return bcrypt.checkpw(_password_bytes(plain_password), hashed_password.encode("ascii"))
    except ValueError:
        # Malformed hash in storage
        return False


def hash_owner_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class OwnerCapability:
    """
    Bearer credential proving owner authority over one zone.

    Issued once when the zone is created and presented on every privileged
    call. It carries no identity: whoever holds the token controls the zone.
    """

    token: str

    @classmethod
    def issue(cls) -> "OwnerCapability":
        return cls(token=secrets.token_hex(32))

    @classmethod
    def from_header(cls, value: Optional[str]) -> Optional["OwnerCapability"]:
        if not value or not value.strip():
            return None
        return cls(token=value.strip())

    @property
    def digest(self) -> str:
        return hash_owner_token(self.token)

    def grants(self, owner_token_hash: str) -> bool:
        return hmac.compare_digest(self.digest, owner_token_hash)

    def __repr__(self) -> str:
        return "OwnerCapability(token=<redacted>)"
