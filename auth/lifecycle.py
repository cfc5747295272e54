"""
auth/lifecycle.py -- Account lifecycle: register, verify, login.

State machine:

    register()            verify()
       |                     |
       v                     v
    pending  ------------> verified      (terminal, no path back)

  register  -- persists a pending account holding the digest of a fresh
               one-time code, then emails the plaintext code.
  verify    -- consumes the code (single use) and flips is_verified in one write.
  login     -- checks the password of a verified account and mints a session
               token through auth/tokens.py.

Ordering decision for register: persist first, notify second. If the email
provider fails, the account still exists in the pending state, the failure
is logged, and the response carries metaData.emailSent = false. resend_code()
issues a fresh code for such accounts.

Admin helpers (list_accounts, delete_account, assign_role) live here as well
because they are the only other writers of the accounts table.

Layer rule: may import core/, auth/, rbac/ (store only) and notify/. Never api/.
"""

from __future__ import annotations

import logging
import re
import secrets
import string

from auth import otp
from auth.models import Account
from auth.store import AccountStore
from auth.tokens import TOKEN_TYPE, _DUMMY_HASH, create_access_token, token_lifetime, verify_password
from core.config import Settings, get_settings
from core.errors import AuthError, ConflictError, NotFoundError, ValidationError, operation
from core.models import Envelope, PageRequest, page_meta
from notify.email import EmailDeliveryError, EmailSender, verification_message
from rbac.store import RBACStore

logger = logging.getLogger("rolegate.auth")

_REFERRAL_ALPHABET = string.ascii_lowercase + string.digits
_REFERRAL_ATTEMPTS = 5


def normalize_email(email: str) -> str:
    return email.strip().lower()


class AccountLifecycle:
    """Orchestrates the account state machine over AccountStore.

    Usage:
        lifecycle = AccountLifecycle(accounts, rbac_store, sender)
        lifecycle.register("Ada", "Lovelace", "a@x.com", "pw12345")
        lifecycle.verify("a@x.com", "123456")
        envelope = lifecycle.login("a@x.com", "pw12345")
        envelope.meta_data["token"]
    """

    def __init__(
        self,
        accounts: AccountStore,
        rbac: RBACStore,
        email_sender: EmailSender,
        settings: Settings | None = None,
    ) -> None:
        self._accounts = accounts
        self._rbac = rbac
        self._email = email_sender
        self._settings = settings or get_settings()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _new_referral_code(self, email: str) -> str:
        """Email-derived prefix + random suffix, e.g. "ada" + "k3x9qe" -> "adak3x9qe".

        Retried until unused. The UNIQUE constraint on accounts.referral_code
        still backs this up against a concurrent registration.
        """
        prefix = re.sub(r"[^a-z0-9]", "", email.split("@", 1)[0].lower())[:3]
        for _ in range(_REFERRAL_ATTEMPTS):
            suffix = "".join(secrets.choice(_REFERRAL_ALPHABET) for _ in range(6))
            code = f"{prefix}{suffix}"
            if not self._accounts.referral_code_exists(code):
                return code
        return f"{prefix}{secrets.token_hex(6)}"

    def _send_code(self, account: Account, code: str) -> bool:
        """Email the plaintext code. Returns False (and logs) if delivery failed."""
        message = verification_message(account.email, code, account.firstname, self._settings.app_name)
        try:
            self._email.send(message)
        except EmailDeliveryError as exc:
            logger.warning("Verification email to %s failed: %s", account.email, exc)
            return False
        return True

    def _require(self, account_id: int) -> Account:
        account = self._accounts.get_by_id(account_id)
        if account is None:
            raise NotFoundError("User not found", code="account_not_found", details={"account_id": account_id})
        return account

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    @operation("Register")
    def register(
        self,
        firstname: str,
        lastname: str,
        email: str,
        password: str,
        phone: str | None = None,
        referred_by: str | None = None,
    ) -> Envelope:
        email = normalize_email(email)
        if self._accounts.email_exists(email):
            raise ConflictError("User already existed", code="email_taken")

        referrer: str | None = None
        if referred_by:
            referrer = referred_by.strip().lower()
            if not self._accounts.referral_code_exists(referrer):
                raise ValidationError("Unknown referral code", code="invalid_referral_code")

        role = self._rbac.get_role_by_name(self._settings.default_role)
        if role is None:
            raise NotFoundError(
                f"Default role '{self._settings.default_role}' is not configured",
                code="default_role_missing",
            )

        issued = otp.issue()
        account = Account(
            email=email,
            firstname=firstname,
            lastname=lastname,
            phone=phone,
            role_id=role.id,
            referral_code=self._new_referral_code(email),
            referred_by=referrer,
            verification_code=issued.digest,
        )
        account.set_password(password)
        account_id = self._accounts.create_account(account)
        created = self._require(account_id)
        logger.info("Account registered: id=%d (pending verification)", account_id)

        email_sent = self._send_code(created, issued.code)
        message = "Registration successful. Please check your email for the verification code."
        if not email_sent:
            message = "Registration successful, but the verification email could not be sent. Request a new code."
        return Envelope(created, {"message": message, "emailSent": email_sent})

    @operation("Verify Email")
    def verify(self, email: str, code: str) -> Envelope:
        email = normalize_email(email)
        digest = otp.hash_code(code)
        account = self._accounts.find_by_verification_code(email, digest)
        if account is None or otp.is_expired(account.verification_code_issued_at):
            raise ValidationError("Invalid OTP or email", code="invalid_code")
        if account.is_verified:
            raise ConflictError("Email already verified", code="already_verified")
        if not self._accounts.consume_verification_code(account.id, digest):
            # Another request consumed it between the lookup and the update.
            raise ValidationError("Invalid OTP or email", code="invalid_code")
        logger.info("Account verified: id=%d", account.id)
        return Envelope(
            {
                "id": account.id,
                "email": account.email,
                "firstname": account.firstname,
                "lastname": account.lastname,
                "isVerified": True,
            },
            {"message": "Email verified successfully"},
        )

    @operation("Login")
    def login(self, email: str, password: str) -> Envelope:
        account = self._accounts.get_by_email(normalize_email(email))
        if account is None:
            # Equalize timing -- do NOT return before running bcrypt.
            verify_password(password, _DUMMY_HASH)
            raise AuthError("Invalid email or password", code="bad_credentials")
        if not account.is_verified:
            raise AuthError("Please verify your email before logging in", code="account_not_verified")
        if not verify_password(password, account.hashed_password or _DUMMY_HASH):
            raise AuthError("Invalid email or password", code="bad_credentials")

        token = create_access_token(account.id, account.email, account.role, account.role_id)
        logger.info("Login: account id=%d role=%s", account.id, account.role)
        return Envelope(
            account,
            {"token": token, "expiresIn": token_lifetime(), "tokenType": TOKEN_TYPE},
        )

    @operation("Resend Verification Code")
    def resend_code(self, email: str) -> Envelope:
        account = self._accounts.get_by_email(normalize_email(email))
        if account is None:
            raise NotFoundError("User not found", code="account_not_found")
        if account.is_verified:
            raise ConflictError("Email already verified", code="already_verified")
        issued = otp.issue()
        self._accounts.set_verification_code(account.id, issued.digest)
        email_sent = self._send_code(account, issued.code)
        return Envelope({"email": account.email}, {"message": "Verification code sent", "emailSent": email_sent})

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    @operation("Get Users")
    def list_accounts(self, page: int = 1, limit: int = 10) -> Envelope:
        req = PageRequest(page, limit)
        accounts, total = self._accounts.list_accounts(req.offset, req.limit)
        return Envelope(accounts, page_meta("totalUsers", total, req))

    @operation("Get User")
    def get_account(self, account_id: int) -> Envelope:
        return Envelope(self._require(account_id), {})

    @operation("Delete User")
    def delete_account(self, account_id: int) -> Envelope:
        account = self._require(account_id)
        self._accounts.delete_account(account_id)
        logger.info("Account deleted: id=%d", account_id)
        return Envelope({"userId": account_id, "email": account.email}, {"message": "User deleted"})

    @operation("Assign Role")
    def assign_role(self, account_id: int, role_id: int) -> Envelope:
        self._require(account_id)
        role = self._rbac.get_role(role_id, expand=False)
        if role is None:
            raise NotFoundError("Role not found", code="role_not_found", details={"role_id": role_id})
        self._accounts.update_account(account_id, role_id=role_id)
        return Envelope(self._require(account_id), {"message": f"Role '{role.name}' assigned"})

    @operation("Create Admin")
    def create_admin(self, firstname: str, lastname: str, email: str, password: str) -> Envelope:
        """Bootstrap an already-verified account holding the admin role.

        Skips the email round trip. Only reachable from the CLI; there is no
        HTTP route for it.
        """
        email = normalize_email(email)
        if self._accounts.email_exists(email):
            raise ConflictError("User already existed", code="email_taken")
        role = self._rbac.get_role_by_name(self._settings.admin_role)
        if role is None:
            raise NotFoundError(
                f"Admin role '{self._settings.admin_role}' is not configured",
                code="admin_role_missing",
            )
        account = Account(
            email=email,
            firstname=firstname,
            lastname=lastname,
            role_id=role.id,
            referral_code=self._new_referral_code(email),
            is_verified=True,
        )
        account.set_password(password)
        account_id = self._accounts.create_account(account)
        logger.info("Admin account created: id=%d", account_id)
        return Envelope(self._require(account_id), {"message": "Admin account created"})

    @operation("Change Password")
    def change_password(self, account_id: int, current_password: str, new_password: str) -> Envelope:
        account = self._require(account_id)
        if not verify_password(current_password, account.hashed_password or _DUMMY_HASH):
            raise AuthError("Current password is incorrect", code="bad_credentials")
        changed = account.set_password(new_password)
        if changed:
            self._accounts.update_account(account_id, hashed_password=account.hashed_password)
        return Envelope(account, {"message": "Password updated" if changed else "Password unchanged"})
