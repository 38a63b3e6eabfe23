"""Event type constants.

Centralizing event types as constants prevents typos and makes it easy
to discover every event the audit log can contain.
"""

# ─── Accounts ────────────────────────────────────────────

USER_REGISTERED = "user.registered"
USER_OAUTH_CREATED = "user.oauth_created"
USER_OAUTH_LINKED = "user.oauth_linked"
USER_EMAIL_VERIFIED = "user.email_verified"
USER_PASSWORD_RESET_REQUESTED = "user.password_reset_requested"
USER_PASSWORD_CHANGED = "user.password_changed"

# ─── Verification badge ──────────────────────────────────

VERIFICATION_SUBMITTED = "verification.submitted"
VERIFICATION_APPROVED = "verification.approved"
VERIFICATION_REJECTED = "verification.rejected"
VERIFICATION_REVOKED = "verification.revoked"
