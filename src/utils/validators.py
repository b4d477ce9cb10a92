"""Form validation. Every validator returns a dict of field -> message, empty when valid."""

import re
from typing import Dict, Optional

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

MIN_NAME_LENGTH = 2
MIN_PASSWORD_LENGTH = 6
MIN_TICKET_MESSAGE_LENGTH = 10

CATEGORIES = ("vegetable", "fruit")


def validate_name(name: Optional[str]) -> Optional[str]:
    name = (name or "").strip()
    if not name:
        return "Name is required"
    if len(name) < MIN_NAME_LENGTH:
        return f"Name must be at least {MIN_NAME_LENGTH} characters"
    return None


def validate_email(email: Optional[str]) -> Optional[str]:
    email = (email or "").strip()
    if not email:
        return "Email is required"
    if not EMAIL_RE.match(email):
        return "Please enter a valid email address"
    return None


def validate_password(password: Optional[str]) -> Optional[str]:
    if not (password or "").strip():
        return "Password is required"
    if len(password) < MIN_PASSWORD_LENGTH:
        return f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
    return None


def _collect(**checks: Optional[str]) -> Dict[str, str]:
    return {field: msg for field, msg in checks.items() if msg}


def validate_registration(
    name: str, email: str, password: str, confirm_password: str
) -> Dict[str, str]:
    confirm = None
    if not (confirm_password or "").strip():
        confirm = "Please confirm your password"
    elif confirm_password != password:
        confirm = "Passwords do not match"
    return _collect(
        name=validate_name(name),
        email=validate_email(email),
        password=validate_password(password),
        confirm_password=confirm,
    )


def validate_login(email: str, password: str) -> Dict[str, str]:
    return _collect(
        email=validate_email(email),
        password=None if (password or "").strip() else "Password is required",
    )


def validate_profile(name: str, email: str) -> Dict[str, str]:
    return _collect(name=validate_name(name), email=validate_email(email))


def validate_delivery(name: str, phone: str, address: str) -> Dict[str, str]:
    return _collect(
        name=None if (name or "").strip() else "Name is required",
        phone=None if (phone or "").strip() else "Phone is required",
        address=None if (address or "").strip() else "Address is required",
    )


def validate_ticket(name: str, email: str, message: str) -> Dict[str, str]:
    message = (message or "").strip()
    msg_error = None
    if not message:
        msg_error = "Message is required"
    elif len(message) < MIN_TICKET_MESSAGE_LENGTH:
        msg_error = f"Message must be at least {MIN_TICKET_MESSAGE_LENGTH} characters"
    return _collect(
        name=None if (name or "").strip() else "Name is required",
        email=validate_email(email),
        message=msg_error,
    )


def parse_price(value) -> Optional[int]:
    """Integer price from user input, None if not a positive whole amount."""
    try:
        number = float(str(value).strip())
    except (TypeError, ValueError):
        return None
    if number <= 0 or number != int(number):
        return None
    return int(number)


def validate_product_form(
    name: str, price, image: str, category: str
) -> Dict[str, str]:
    return _collect(
        name=None if (name or "").strip() else "Product name is required",
        price=None if parse_price(price) else "Price must be a positive whole amount",
        image=None if (image or "").strip() else "Image URL is required",
        category=None if category in CATEGORIES else "Category is required",
    )
