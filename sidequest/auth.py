"""
Authentication module for SideQuest.

Handles email + password sign-up and sign-in with bcrypt hashing. The user
document created at sign-up carries a default matching profile.
"""

import logging

import bcrypt

from sidequest.errors import EmailTaken
from sidequest.models import UserPreferences
from sidequest.users import UserDirectory

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


def hash_password(password: str) -> str:
    """
    Hash a password using bcrypt with automatic salt generation.

    Args:
        password: The plaintext password to hash

    Returns:
        The bcrypt hash as a string

    Example:
        >>> password_hash = hash_password("hunter22")
        >>> password_hash != "hunter22"  # Hash never equals plaintext
        True
    """
    password_bytes = password.encode('utf-8')
    salt = bcrypt.gensalt()
    hashed = bcrypt.hashpw(password_bytes, salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify a password against a stored bcrypt hash.

    Returns:
        True if password matches hash, False otherwise (including when the
        stored hash is malformed)
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Invalid hash format
        return False


def _public(user: dict) -> dict:
    return {k: v for k, v in user.items() if k != 'passwordHash'}


def register_user(email: str, password: str, display_name: str, directory: UserDirectory) -> dict:
    """
    Create a user account.

    Args:
        email: Login email, stored lowercased
        password: Plaintext password (at least 6 characters)
        display_name: Name shown to teammates
        directory: User directory to create the account in

    Returns:
        The new user document, without the password hash

    Raises:
        ValueError: If email, name or password is missing or too short
        EmailTaken: If an account already uses this email
    """
    email = email.strip().lower()
    display_name = display_name.strip()
    if not email or '@' not in email:
        raise ValueError("Please enter a valid email address")
    if not display_name:
        raise ValueError("Please enter a display name")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

    if directory.find_by_email(email) is not None:
        raise EmailTaken("An account with this email already exists")

    user = directory.create_user({
        'email': email,
        'displayName': display_name,
        'passwordHash': hash_password(password),
        'preferences': UserPreferences.default().to_doc(),
        'activeQuestId': None,
        'activeQuestStartDate': None,
        'completedQuests': [],
    })
    logger.info(f"Registered user {user['id']}")
    return _public(user)


def authenticate_user(email: str, password: str, directory: UserDirectory) -> dict | None:
    """
    Look up the identity behind an email + password.

    Returns:
        User document (without the password hash) on success, None on
        unknown email or wrong password
    """
    user = directory.find_by_email(email)
    if user is None:
        return None
    if not verify_password(password, user.get('passwordHash', '')):
        return None
    return _public(user)
