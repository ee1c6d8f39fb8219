"""
Setup Token

Single-session bearer credential. A token is issued unbound, binds to
the address of the first caller that validates it and stays valid for
the whole session until it expires or is invalidated.
"""

import hmac
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from ..config.defaults import UNBOUND_IP
from ..errors import TokenExpired, TokenIPMismatch, TokenMismatch, TokenNotFound
from ..storage.store import TOKEN_DOC, ConfigurationStore
from ..utils.logging import get_logger
from ..utils.clock import utc_now

logger = get_logger(__name__)

TOKEN_BYTES = 32


@dataclass
class SessionToken:
    """The current setup token."""
    token: str
    expires_at: datetime
    bound_ip: str = UNBOUND_IP
    used: bool = False
    created_at: Optional[datetime] = None

    @property
    def is_bound(self) -> bool:
        return self.bound_ip != UNBOUND_IP

    @property
    def prefix(self) -> str:
        """Short form safe for log output."""
        return self.token[:8]

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "token": self.token,
            "expires_at": self.expires_at.isoformat(),
            "bound_ip": self.bound_ip,
            "used": self.used,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionToken":
        created = data.get("created_at")
        return cls(
            token=data["token"],
            expires_at=datetime.fromisoformat(data["expires_at"]),
            bound_ip=data.get("bound_ip") or UNBOUND_IP,
            used=bool(data.get("used", False)),
            created_at=datetime.fromisoformat(created) if created else None,
        )


class TokenManager:
    """
    Issues, validates and invalidates the setup token.

    All reads and writes happen inside the store's session transaction,
    so first-use binding cannot race a concurrent validation.
    """

    def __init__(
        self,
        store: ConfigurationStore,
        ttl: timedelta = timedelta(hours=8),
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize the token manager.

        Args:
            store: Store holding the token document
            ttl: Lifetime of newly issued tokens
            clock: Source of the current time
        """
        self.store = store
        self.ttl = ttl
        self.clock = clock

    def current(self) -> Optional[SessionToken]:
        """Get the stored token, if any."""
        data = self.store.load(TOKEN_DOC)
        return SessionToken.from_dict(data) if data else None

    def issue(self, client_ip: str = UNBOUND_IP) -> SessionToken:
        """
        Issue a fresh token, replacing any previous one.

        The token always starts unbound; client_ip is only recorded in
        the log.
        """
        now = self.clock()
        token = SessionToken(
            token=secrets.token_hex(TOKEN_BYTES),
            expires_at=now + self.ttl,
            bound_ip=UNBOUND_IP,
            used=False,
            created_at=now,
        )
        with self.store.transaction():
            self.store.save(TOKEN_DOC, token.to_dict())

        logger.info("Issued setup token %s... (requested by %s, expires %s)",
                    token.prefix, client_ip, token.expires_at.isoformat())
        return token

    def validate(self, token: str, client_ip: str) -> SessionToken:
        """
        Validate a presented token.

        Args:
            token: Token string presented by the caller
            client_ip: Address of the caller

        Returns:
            The (possibly newly bound) token

        Raises:
            TokenNotFound: No token has been issued
            TokenMismatch: The string differs from the issued token
            TokenExpired: The token expired or was invalidated
            TokenIPMismatch: The token is bound to another address
        """
        with self.store.transaction():
            current = self.current()
            if current is None:
                logger.warning("Token validation from %s with no token issued", client_ip)
                raise TokenNotFound("no setup token has been issued")

            if not hmac.compare_digest(current.token.encode(), token.encode()):
                logger.warning("Invalid setup token %s... from %s", token[:8], client_ip)
                raise TokenMismatch("invalid setup token")

            if current.is_expired(self.clock()):
                logger.warning("Expired setup token %s... from %s", current.prefix, client_ip)
                raise TokenExpired("setup token expired")

            if not current.is_bound:
                current.bound_ip = client_ip
                self.store.save(TOKEN_DOC, current.to_dict())
                logger.info("Setup token %s... bound to %s", current.prefix, client_ip)
            elif current.bound_ip != client_ip:
                logger.warning("Setup token %s... used from %s, bound to %s",
                               current.prefix, client_ip, current.bound_ip)
                raise TokenIPMismatch(current.bound_ip)

            return current

    def invalidate(self) -> None:
        """Mark the token used and move its expiry into the past."""
        with self.store.transaction():
            current = self.current()
            if current is None:
                return
            current.used = True
            current.expires_at = self.clock() - timedelta(hours=1)
            self.store.save(TOKEN_DOC, current.to_dict())
        logger.info("Setup token %s... invalidated", current.prefix)

    def mark_used(self, token: str) -> None:
        """
        Record that a token has been used.

        Audit flag only; validation never looks at it.
        """
        with self.store.transaction():
            current = self.current()
            if current is None or not hmac.compare_digest(current.token.encode(), token.encode()):
                raise TokenMismatch("invalid setup token")
            current.used = True
            self.store.save(TOKEN_DOC, current.to_dict())
