"""Interface of the transport that carries a session to the server.

Transports report failures through status codes, like the underlying client
library does: ``0`` is success everywhere except ``fetch``, which answers
``FETCH_ROW`` for a row and ``FETCH_DONE`` once the result is complete. The
human readable reason for the last failure is available from ``error``.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Optional, Tuple

from typing_extensions import Protocol

from .raw import RawValue

STATUS_OK = 0
FETCH_DONE = 0
FETCH_ROW = 1

# callback(host, ip_address, key_type, fingerprint) -> accept
TrustCallback = Callable[[str, str, str, str], bool]


class Transport(Protocol):
    def connect(self, options: Dict[str, Any]) -> Tuple[int, Any]:
        ...

    def run(self, handle: Any, query: str, params: Optional[RawValue]) -> Tuple[int, Optional[RawValue]]:
        ...

    def pull(self, handle: Any, request: Optional[RawValue]) -> int:
        ...

    def fetch(self, handle: Any) -> Tuple[int, Optional[RawValue]]:
        ...

    def error(self, handle: Any) -> str:
        ...

    def close(self, handle: Any) -> None:
        ...


__all__ = ["STATUS_OK", "FETCH_DONE", "FETCH_ROW", "TrustCallback", "Transport"]
