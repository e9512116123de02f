"""Authentication stub: every credential is accepted."""

import base64
import binascii
import logging
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthResult:
    """Outcome of an AUTH command."""

    success: bool
    mechanism: str
    username: Optional[str] = None


class AuthStub:
    """
    Accepts any mechanism and any credentials.

    Development sites send a username with an empty password; nothing is
    verified. The username is decoded when the client supplied an initial
    response, purely so captured messages can show who sent them.
    """

    # Advertised in EHLO; other mechanisms are accepted all the same
    SUPPORTED_MECHANISMS = ("PLAIN",)

    def authenticate(self, mechanism: str, credentials: Optional[str] = None) -> AuthResult:
        """
        Authenticate a client.

        Args:
            mechanism: SASL mechanism name from the AUTH command
            credentials: Optional base64 initial response

        Returns:
            AuthResult, always successful
        """
        mechanism = mechanism.upper()
        username = self._extract_username(mechanism, credentials)
        logger.debug(f"AUTH {mechanism} accepted (username={username!r})")
        return AuthResult(success=True, mechanism=mechanism, username=username)

    def _extract_username(self, mechanism: str, credentials: Optional[str]) -> Optional[str]:
        if not credentials or credentials == "=":
            return None

        try:
            decoded = base64.b64decode(credentials, validate=True).decode("utf-8", errors="replace")
        except (binascii.Error, ValueError):
            return None

        if mechanism == "PLAIN":
            # authzid \0 authcid \0 passwd
            parts = decoded.split("\0")
            if len(parts) == 3:
                return parts[1] or parts[0] or None
            return None

        if mechanism == "LOGIN":
            return decoded or None

        return None
