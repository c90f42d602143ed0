"""Password hashing and account checks."""

import logging

import bcrypt

from .errors import AuthenticationError
from .storage import JournalDatabase

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8

# Compared against when the username is unknown so both paths cost one bcrypt check
_DUMMY_HASH = bcrypt.hashpw(b"daylog-dummy-password", bcrypt.gensalt()).decode("utf-8")


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def check_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        logger.warning("Stored password hash is malformed")
        return False


def register_user(db: JournalDatabase, username: str, password: str) -> None:
    """Create an account with a bcrypt-hashed password.

    Raises:
        AuthenticationError: If the input is unusable or the name is taken.
    """
    username = username.strip()
    if not username:
        raise AuthenticationError("Username must not be empty")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise AuthenticationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
        )
    if not db.create_user(username, hash_password(password)):
        raise AuthenticationError(f"User already exists: {username}")


def authenticate(db: JournalDatabase, username: str, password: str) -> str:
    """Verify credentials.

    Returns:
        The canonical username.

    Raises:
        AuthenticationError: If the username or password is wrong.
    """
    username = (username or "").strip()
    stored_hash = db.get_password_hash(username) if username else None

    if stored_hash is None:
        check_password(password or "", _DUMMY_HASH)
        raise AuthenticationError("Invalid username or password")

    if not check_password(password or "", stored_hash):
        logger.info(f"Failed login for {username}")
        raise AuthenticationError("Invalid username or password")

    return username
