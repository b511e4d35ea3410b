"""
Console email sender adapter - Implements EmailSender protocol.

Logs government email verification codes instead of delivering them.
Intended for local development and demos.
"""

import logging

logger = logging.getLogger(__name__)


class ConsoleEmailSender:
    """
    Implements EmailSender protocol via console logging.

    Uses structural subtyping - no explicit inheritance from Protocol.
    """

    def __init__(self, subject: str = "Verify your government email") -> None:
        self.subject = subject

    def send_verification_code(self, email: str, code: str) -> None:
        """
        Log verification code to console (simulates email delivery).

        This is the only place a plaintext code is ever logged.

        Args:
            email: Recipient government email address (normalized by domain layer)
            code: 6-digit verification code
        """
        logger.info("[VERIFICATION] To: %s Subject: %s Code: %s", email, self.subject, code)
