"""Value types shared by the classifier, race coordinator and cache."""
import enum
from dataclasses import dataclass, replace
from typing import Optional, Tuple

Headers = Tuple[Tuple[str, str], ...]


class QueryMode(str, enum.Enum):
    """How the DNS message was delivered by the client."""
    GET = "GET"
    POST = "POST"


@dataclass(frozen=True)
class DoHQuery:
    """An inbound DoH query, forwarded opaquely to every upstream."""
    mode: QueryMode
    body: bytes = b""
    query_string: str = ""
    forward_headers: Headers = ()

    @property
    def method(self) -> str:
        """Outbound HTTP method, mirroring the inbound one."""
        return self.mode.value

    @property
    def url_suffix(self) -> str:
        """Query string appended to each upstream URL (GET only)."""
        if self.mode is QueryMode.GET and self.query_string:
            return "?" + self.query_string
        return ""

    @property
    def content(self) -> Optional[bytes]:
        """Outbound request body (POST only)."""
        if self.mode is QueryMode.POST:
            return self.body
        return None


@dataclass(frozen=True)
class UpstreamResponse:
    """A response snapshot: what the winning upstream returned, or what the cache holds."""
    status_code: int
    headers: Headers
    content: bytes
    upstream: str = ""

    def header(self, name: str) -> Optional[str]:
        """Case-insensitive header lookup."""
        name = name.lower()
        for key, value in self.headers:
            if key.lower() == name:
                return value
        return None

    def with_headers(self, **overrides: str) -> "UpstreamResponse":
        """
        Return a copy with headers set, replacing existing ones of the same name.

        Keyword names use underscores for dashes, e.g. ``cache_control``.
        """
        new = {name.replace('_', '-').lower(): value for name, value in overrides.items()}
        kept = tuple((k, v) for k, v in self.headers if k.lower() not in new)
        return replace(self, headers=kept + tuple(new.items()))
