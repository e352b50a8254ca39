# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Account and Password Service

WHY: Every order, payout and stock change must be attributable to an
account. Uses bcrypt for password hashing and validates password strength.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor from BCRYPT_ROUNDS, default 12)
- Minimum 8 characters required
- Must contain uppercase, lowercase, digit, and special char
- Session tokens managed separately (see session_service.py)
"""

import re

import bcrypt
from flask import current_app

from ..errors import ServiceError
from ..extensions import db
from ..models import User
from ..models.auth import ROLE_CUSTOMER, VALID_ROLES

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class PasswordValidationError(ServiceError):
    """Raised when password doesn't meet strength requirements."""
    pass


class AccountError(ServiceError):
    """Raised when an account cannot be created."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character (!@#$%^&*(),.'":{}|<>)

    Raises PasswordValidationError if requirements not met.
    """
    if not isinstance(password, str) or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    rounds = int(current_app.config.get("BCRYPT_ROUNDS", 12))
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    WHY timing-safe: bcrypt.checkpw() prevents timing attacks automatically.
    """
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Malformed hash
        return False


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def create_user(
    email: str,
    password: str,
    full_name: str | None = None,
    role: str = ROLE_CUSTOMER,
) -> User:
    """
    Create new user with bcrypt password hashing.

    Raises:
        AccountError: invalid email, unknown role, or email already registered
        PasswordValidationError: password doesn't meet requirements
    """
    email = normalize_email(email)
    if not EMAIL_RE.match(email):
        raise AccountError("A valid email address is required", {"email": email})
    if role not in VALID_ROLES:
        raise AccountError(f"Unknown role: {role}", {"valid_roles": list(VALID_ROLES)})

    existing = db.session.query(User).filter_by(email=email).first()
    if existing:
        raise AccountError("Email already registered")

    password_hash = hash_password(password)

    user = User(
        email=email,
        full_name=(full_name or "").strip() or None,
        role=role,
        password_hash=password_hash,
    )

    db.session.add(user)
    db.session.commit()
    return user


def authenticate(email: str, password: str) -> User | None:
    """
    Authenticate user with email and password.

    Returns User if credentials valid and the account is active, None otherwise.
    """
    user = db.session.query(User).filter(
        User.email == normalize_email(email),
        User.is_active.is_(True),
    ).first()

    if not user:
        return None

    if verify_password(password, user.password_hash):
        return user

    return None
