import re

from penwise.errors import ValidationError

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def normalize_email(email: str) -> str:
    """Trim and lower-case an email address, rejecting obviously malformed ones."""
    normalized = email.strip().lower()
    if not EMAIL_RE.fullmatch(normalized):
        raise ValidationError("Invalid email format")
    return normalized


def validate_password(password: str) -> None:
    """Validate password meets requirements.

    Requirements:
    - Minimum length of 8 characters
    - At least one uppercase letter, one lowercase letter, one digit
      and one special character

    Raises:
        ValidationError: If password doesn't meet requirements
    """
    if len(password) < 8:
        raise ValidationError("Password must be at least 8 characters")
    if not re.search(r"[A-Z]", password):
        raise ValidationError("Password must contain at least one uppercase letter")
    if not re.search(r"[a-z]", password):
        raise ValidationError("Password must contain at least one lowercase letter")
    if not re.search(r"[0-9]", password):
        raise ValidationError("Password must contain at least one number")
    if not re.search(r"[^A-Za-z0-9]", password):
        raise ValidationError("Password must contain at least one special character")
