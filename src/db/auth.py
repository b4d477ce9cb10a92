"""
Identity provider.

Accounts live in the auth_accounts collection, separate from the users
profiles the rest of the app reads. Passwords are stored as salted
PBKDF2-SHA256 hashes. Every public call returns an AuthResult; provider
failures are mapped to user-facing messages and never raised.

The signed in user is mirrored to device-local storage so a restart can
restore the session, and every change of the signed in user is announced to
the listeners registered with subscribe_auth_state.
"""

from __future__ import annotations

import hashlib
import hmac
import inspect
import secrets
import time
from dataclasses import asdict
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from db import crud, docstore
from db.errors import StoreError
from db.local_storage import CURRENT_USER_KEY, LocalStorage
from db.models import AuthResult, UserProfile
from utils.logger import get_logger
from utils.validators import EMAIL_RE, MIN_PASSWORD_LENGTH

_logger = get_logger(__name__)

ACCOUNTS = "auth_accounts"
PBKDF2_ROUNDS = 120_000
MAX_FAILED_ATTEMPTS = 5
LOCKOUT_SECONDS = 15 * 60

AuthListener = Callable[[Optional[UserProfile]], Optional[Awaitable[None]]]
FederatedFlow = Callable[[], Awaitable[Tuple[str, str]]]

REGISTER_ERRORS = {
    "auth/email-already-in-use": "Email already registered!",
    "auth/invalid-email": "Invalid email address!",
    "auth/weak-password": f"Password should be at least {MIN_PASSWORD_LENGTH} characters!",
    "auth/operation-not-allowed": "Email/password accounts are not enabled!",
}
LOGIN_ERRORS = {
    "auth/user-not-found": "Email not found!",
    "auth/wrong-password": "Incorrect password!",
    "auth/invalid-email": "Invalid email address!",
    "auth/user-disabled": "This account has been disabled!",
    "auth/too-many-requests": "Too many failed attempts. Please try again later!",
}
FEDERATED_ERRORS = {
    "auth/popup-closed-by-user": "Sign-in popup was closed. Please try again.",
    "auth/cancelled-popup-request": "Only one popup request is allowed at a time.",
    "auth/popup-blocked": "Popup was blocked. Please allow popups and try again.",
    "auth/account-exists-with-different-credential": (
        "An account already exists with this email. Please use email/password login."
    ),
    "auth/operation-not-allowed": "Federated sign-in is not configured.",
}


class AuthError(Exception):
    def __init__(self, code: str, message: str = ""):
        super().__init__(message or code)
        self.code = code
        self.message = message


def _message(table: Dict[str, str], error: AuthError, fallback: str) -> str:
    return table.get(error.code) or error.message or fallback


def hash_password(password: str, salt: Optional[str] = None) -> Tuple[str, str]:
    salt = salt or secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac(
        "sha256", password.encode("utf-8"), bytes.fromhex(salt), PBKDF2_ROUNDS
    )
    return salt, digest.hex()


def verify_password(password: str, salt: str, expected: str) -> bool:
    _, digest = hash_password(password, salt)
    return hmac.compare_digest(digest, expected)


def _normalize_email(email: str) -> str:
    return (email or "").strip().lower()


class IdentityProvider:
    def __init__(
        self,
        storage: LocalStorage,
        federated_flow: Optional[FederatedFlow] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.storage = storage
        self._federated_flow = federated_flow
        self._current: Optional[UserProfile] = None
        self._listeners: List[AuthListener] = []
        self._clock = clock
        # email -> (failed attempts, time of the first failure)
        self._failed_attempts: Dict[str, Tuple[int, float]] = {}

    # ---------------------------
    # State
    # ---------------------------

    def current_user(self) -> Optional[UserProfile]:
        return self._current

    def subscribe_auth_state(self, callback: AuthListener) -> Callable[[], None]:
        """Register a listener for sign-in/sign-out. Async listeners are awaited in order."""
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    async def _set_current(self, user: Optional[UserProfile]) -> None:
        self._current = user
        if user is None:
            self.storage.remove_item(CURRENT_USER_KEY)
        else:
            self.storage.set_json(CURRENT_USER_KEY, asdict(user))
        for listener in list(self._listeners):
            try:
                result = listener(user)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                _logger.exception("Auth state listener failed")

    def _is_locked(self, email: str) -> bool:
        """True while `email` has used up its attempts inside the lockout window."""
        entry = self._failed_attempts.get(email)
        if entry is None:
            return False
        count, first_failure = entry
        if self._clock() - first_failure >= LOCKOUT_SECONDS:
            del self._failed_attempts[email]
            return False
        return count >= MAX_FAILED_ATTEMPTS

    def _record_failure(self, email: str) -> None:
        now = self._clock()
        self._failed_attempts = {
            k: v for k, v in self._failed_attempts.items() if now - v[1] < LOCKOUT_SECONDS
        }
        count, first_failure = self._failed_attempts.get(email, (0, now))
        self._failed_attempts[email] = (count + 1, first_failure)

    async def _find_account(self, email: str) -> Optional[Dict]:
        accounts = await docstore.query(ACCOUNTS, "email", email)
        return accounts[0] if accounts else None

    async def _load_profile(self, uid: str, email: str, display_name: str) -> UserProfile:
        """Upsert name/email into users/<uid> and return the profile including its role."""
        await crud.save_user_profile(uid, {"name": display_name, "email": email})
        profile = await crud.get_user_profile(uid)
        if profile is None:
            return UserProfile(uid=uid, name=display_name, email=email)
        return profile

    # ---------------------------
    # Registration & sign in
    # ---------------------------

    async def register_with_credentials(
        self, email: str, password: str, name: str
    ) -> AuthResult:
        """Create an email/password account and sign it in."""
        email = _normalize_email(email)
        name = (name or "").strip()
        try:
            if not EMAIL_RE.match(email):
                raise AuthError("auth/invalid-email")
            if len(password or "") < MIN_PASSWORD_LENGTH:
                raise AuthError("auth/weak-password")
            if await self._find_account(email):
                raise AuthError("auth/email-already-in-use")

            salt, digest = hash_password(password)
            uid = await docstore.add_doc(
                ACCOUNTS,
                {
                    "email": email,
                    "display_name": name,
                    "provider": "password",
                    "salt": salt,
                    "password_hash": digest,
                    "disabled": False,
                },
            )
            user = await self._load_profile(uid, email, name or email.split("@")[0])
        except AuthError as e:
            return AuthResult(False, message=_message(REGISTER_ERRORS, e, "Registration failed. Please try again."))
        except StoreError as e:
            _logger.error(f"Registration for {email} failed: {e}")
            return AuthResult(False, message="Registration failed. Please try again.")

        _logger.info(f"Registered account {user.uid}")
        await self._set_current(user)
        return AuthResult(True, user, "Registration successful!")

    async def login_with_credentials(self, email: str, password: str) -> AuthResult:
        email = _normalize_email(email)
        try:
            if not EMAIL_RE.match(email):
                raise AuthError("auth/invalid-email")
            if self._is_locked(email):
                raise AuthError("auth/too-many-requests")
            account = await self._find_account(email)
            if account is None:
                raise AuthError("auth/user-not-found")
            if account.get("disabled"):
                raise AuthError("auth/user-disabled")
            if account.get("provider") != "password" or not verify_password(
                password or "", account.get("salt", ""), account.get("password_hash", "")
            ):
                self._record_failure(email)
                raise AuthError("auth/wrong-password")

            self._failed_attempts.pop(email, None)
            name = account.get("display_name") or email.split("@")[0]
            user = await self._load_profile(account["id"], email, name)
        except AuthError as e:
            return AuthResult(False, message=_message(LOGIN_ERRORS, e, "Login failed. Please try again."))
        except StoreError as e:
            _logger.error(f"Login for {email} failed: {e}")
            return AuthResult(False, message="Login failed. Please try again.")

        await self._set_current(user)
        return AuthResult(True, user, "Login successful!")

    async def login_with_federated_provider(self) -> AuthResult:
        """
        Sign in through the configured external flow, which returns (email, display name).
        The first federated sign-in for an email creates its account.
        """
        try:
            if self._federated_flow is None:
                raise AuthError("auth/operation-not-allowed")
            email, display_name = await self._federated_flow()
            email = _normalize_email(email)
            if not EMAIL_RE.match(email):
                raise AuthError("auth/invalid-email", "Invalid email address!")

            account = await self._find_account(email)
            if account is not None and account.get("provider") != "federated":
                raise AuthError("auth/account-exists-with-different-credential")
            if account is not None and account.get("disabled"):
                raise AuthError("auth/user-disabled", LOGIN_ERRORS["auth/user-disabled"])

            name = (display_name or "").strip() or email.split("@")[0]
            if account is None:
                uid = await docstore.add_doc(
                    ACCOUNTS,
                    {"email": email, "display_name": name, "provider": "federated", "disabled": False},
                )
            else:
                uid = account["id"]
            user = await self._load_profile(uid, email, name)
        except AuthError as e:
            return AuthResult(False, message=_message(FEDERATED_ERRORS, e, "Federated sign-in failed. Please try again."))
        except StoreError as e:
            _logger.error(f"Federated sign-in failed: {e}")
            return AuthResult(False, message="Federated sign-in failed. Please try again.")

        await self._set_current(user)
        return AuthResult(True, user, "Login with Google successful!")

    async def logout(self) -> AuthResult:
        await self._set_current(None)
        return AuthResult(True, message="Logged out.")

    async def restore_session(self) -> Optional[UserProfile]:
        """Sign back in the user mirrored in local storage, if their account still exists."""
        mirrored = self.storage.get_json(CURRENT_USER_KEY)
        if not isinstance(mirrored, dict) or not mirrored.get("uid"):
            return None
        try:
            account = await docstore.get_doc(ACCOUNTS, mirrored["uid"])
        except StoreError:
            account = None
        if account is None or account.get("disabled"):
            self.storage.remove_item(CURRENT_USER_KEY)
            return None
        user = await crud.get_user_profile(account["id"]) or UserProfile(
            uid=account["id"],
            name=account.get("display_name") or account["email"].split("@")[0],
            email=account["email"],
        )
        await self._set_current(user)
        return user

    async def update_profile(self, name: str, email: str) -> AuthResult:
        """Change the signed in user's display name and email."""
        user = self._current
        if user is None:
            return AuthResult(False, message="No user logged in")
        email = _normalize_email(email)
        name = (name or "").strip()
        try:
            if not EMAIL_RE.match(email):
                raise AuthError("auth/invalid-email")
            other = await self._find_account(email)
            if other is not None and other["id"] != user.uid:
                raise AuthError("auth/email-already-in-use")
            await docstore.update_doc(ACCOUNTS, user.uid, {"email": email, "display_name": name})
            updated = await self._load_profile(user.uid, email, name)
        except AuthError as e:
            return AuthResult(False, message=_message(REGISTER_ERRORS, e, "Failed to update profile"))
        except StoreError as e:
            _logger.error(f"Profile update for {user.uid} failed: {e}")
            return AuthResult(False, message="Failed to update profile")

        await self._set_current(updated)
        return AuthResult(True, updated, "Profile updated!")
