############################################################
#
# labchain-directory - LAB Chain Network Directory and Faucet Portal
#
# password_hash.py: Argon2 password hashing utilities
#
# Luke Sheneman
# Research Computing and Data Services (RCDS)
# Institute for Interdisciplinary Data Sciences (IIDS)
# University of Idaho
# sheneman@uidaho.edu
#
############################################################

"""Password hashing utilities.

New hashes are Argon2id. Accounts imported from the first generation of
the site carry ``<salt>:<sha256(password + salt)>`` records; those still
verify and are flagged by :func:`needs_rehash` so a successful login can
upgrade them.
"""

import hashlib
import hmac

from argon2 import PasswordHasher
from argon2.exceptions import Argon2Error, InvalidHashError

# Use Argon2id with recommended parameters
_hasher = PasswordHasher(
    time_cost=3,  # Number of iterations
    memory_cost=65536,  # 64 MB
    parallelism=4,  # Number of parallel threads
    hash_len=32,  # Length of the hash
    salt_len=16,  # Length of the salt
)

_ARGON2_PREFIX = "$argon2"


def _is_legacy_hash(password_hash: str) -> bool:
    return not password_hash.startswith(_ARGON2_PREFIX) and ":" in password_hash


def _verify_legacy(password: str, password_hash: str) -> bool:
    salt, _, expected = password_hash.partition(":")
    if not salt or not expected:
        return False
    try:
        computed = hashlib.sha256((password + salt).encode("utf-8")).hexdigest()
    except (TypeError, UnicodeEncodeError):
        return False
    return hmac.compare_digest(computed.encode("ascii"), expected.encode("ascii", "replace"))


def hash_password(password: str) -> str:
    """
    Hash a password using Argon2id.

    Every call draws a fresh random salt, so hashing the same password
    twice yields two different strings.

    Args:
        password: The plaintext password

    Returns:
        Argon2id hash string (includes salt and parameters)
    """
    return _hasher.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify a password against a stored hash.

    Args:
        password: The plaintext password to verify
        password_hash: The stored Argon2id or legacy hash

    Returns:
        True if the password matches. Malformed hashes return False.
    """
    if not password_hash:
        return False
    if _is_legacy_hash(password_hash):
        return _verify_legacy(password, password_hash)
    try:
        return _hasher.verify(password_hash, password)
    except (Argon2Error, InvalidHashError, TypeError):
        return False


def needs_rehash(password_hash: str) -> bool:
    """
    Check if a password hash needs to be rehashed.

    Legacy SHA-256 records always do, Argon2 hashes do when the
    parameters above have changed.

    Args:
        password_hash: The stored hash

    Returns:
        True if the hash should be regenerated
    """
    if _is_legacy_hash(password_hash):
        return True
    try:
        return _hasher.check_needs_rehash(password_hash)
    except (InvalidHashError, ValueError, TypeError):
        return True
