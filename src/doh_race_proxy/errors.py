"""Exceptions raised along the request path."""


class DoHProxyError(Exception):
    """Base class for proxy errors."""


class RouteNotFound(DoHProxyError):
    """Path is not one of the accepted DoH paths."""

    status_code = 404

    def __init__(self, path: str):
        super().__init__(f"No route for {path}")
        self.path = path


class MethodNotAllowed(DoHProxyError):
    """Method other than GET or POST on an accepted path."""

    status_code = 405

    def __init__(self, method: str):
        super().__init__(f"Method {method} not allowed")
        self.method = method


class UpstreamAttemptFailed(DoHProxyError):
    """A single upstream failed: transport error or non-success status.

    Only ever seen by the race coordinator.
    """

    def __init__(self, url: str, reason: str):
        super().__init__(f"{url}: {reason}")
        self.url = url
        self.reason = reason


class AllUpstreamsFailed(DoHProxyError):
    """Every attempt failed, or none succeeded before the deadline."""

    status_code = 502


class CacheWriteFailed(DoHProxyError):
    """The response cache refused a write."""
