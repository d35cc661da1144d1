"""Connection parameters."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field, fields
from typing import Any, Dict, Optional

from . import __version__
from .errors import InvalidConfigError
from .transport import TrustCallback

DEFAULT_PORT = 7687
CLIENT_NAME = f"graphwire/{__version__}"


class SSLMode(str, enum.Enum):
    DISABLE = "disable"
    REQUIRE = "require"


@dataclass
class ConnectParams:
    """Everything needed to open one session.

    Exactly one of ``host`` (a name to resolve) or ``address`` (a literal IP)
    must be set. ``sslcert`` and ``sslkey`` go together.
    """

    host: Optional[str] = None
    address: Optional[str] = None
    port: int = DEFAULT_PORT
    username: Optional[str] = None
    password: Optional[str] = field(default=None, repr=False)
    client_name: str = CLIENT_NAME
    sslmode: SSLMode = SSLMode.REQUIRE
    sslcert: Optional[str] = None
    sslkey: Optional[str] = None
    trust_callback: Optional[TrustCallback] = None
    lazy: bool = True
    autocommit: bool = False

    @classmethod
    def from_options(cls, **options: Any) -> "ConnectParams":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(options) - known)
        if unknown:
            raise InvalidConfigError(f"unknown connection option(s): {', '.join(unknown)}")
        sslmode = options.get("sslmode")
        if sslmode is not None and not isinstance(sslmode, SSLMode):
            try:
                options["sslmode"] = SSLMode(str(sslmode).lower())
            except ValueError as err:
                raise InvalidConfigError(f"invalid sslmode {sslmode!r}") from err
        return cls(**options)

    def validate(self) -> "ConnectParams":
        if (self.host is None) == (self.address is None):
            raise InvalidConfigError("exactly one of host or address must be set")
        if (self.sslcert is None) != (self.sslkey is None):
            raise InvalidConfigError("sslcert and sslkey must be provided together")
        if isinstance(self.port, bool) or not isinstance(self.port, int) or not 1 <= self.port <= 65535:
            raise InvalidConfigError(f"port must be in 1..65535, got {self.port!r}")
        if not isinstance(self.sslmode, SSLMode):
            raise InvalidConfigError(f"invalid sslmode {self.sslmode!r}")
        if self.trust_callback is not None and not callable(self.trust_callback):
            raise InvalidConfigError("trust_callback must be callable")
        return self

    def to_transport_options(self) -> Dict[str, Any]:
        """Plain dict handed to ``Transport.connect``; session-only flags are left out."""
        options: Dict[str, Any] = {
            "port": self.port,
            "client_name": self.client_name,
            "sslmode": self.sslmode.value,
        }
        for name in ("host", "address", "username", "password", "sslcert", "sslkey", "trust_callback"):
            value = getattr(self, name)
            if value is not None:
                options[name] = value
        return options


__all__ = ["DEFAULT_PORT", "SSLMode", "ConnectParams"]
