# Overview: Operator accounts and password checks.

import logging

import bcrypt

from ..errors import ValidationError
from ..extensions import db
from ..models import User
from ..time_utils import utcnow

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


def validate_password_strength(password: str) -> None:
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters", field="password",
        )


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt with cost factor 12.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode("utf-8"), salt)
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed hash in the database
        return False


def create_user(username: str, password: str) -> User:
    username = (username or "").strip()
    if not username:
        raise ValidationError("username is required", field="username")

    existing = db.session.query(User).filter_by(username=username).first()
    if existing:
        raise ValidationError("Username already exists", field="username")

    user = User(username=username, password_hash=hash_password(password))
    db.session.add(user)
    db.session.commit()
    logger.info("Created user %s", username)
    return user


def authenticate(username: str, password: str) -> User | None:
    """
    Returns the active user on valid credentials, None otherwise.
    Updates last_login_at on success.
    """
    user = db.session.query(User).filter(
        User.username == username,
        User.is_active.is_(True),
    ).first()
    if not user:
        return None

    if verify_password(password or "", user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None
