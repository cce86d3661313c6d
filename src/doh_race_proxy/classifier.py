"""Routing decision for inbound DoH requests."""
from .config import QUERY_PATH
from .errors import MethodNotAllowed, RouteNotFound
from .models import QueryMode

ALLOWED_METHODS = ("GET", "POST")


def classify(method: str, path: str, query_path: str = QUERY_PATH) -> QueryMode:
    """
    Decide whether a request is a DoH query, and how it carries the message.

    The path is checked before the method, so ``PUT /other`` is a 404.

    Args:
        method: HTTP method of the inbound request
        path: URL path of the inbound request
        query_path: Accepted query path besides ``/``

    Returns:
        QueryMode.GET or QueryMode.POST

    Raises:
        RouteNotFound: If the path is neither ``/`` nor the query path
        MethodNotAllowed: If the method is not GET or POST
    """
    if path not in ("/", query_path):
        raise RouteNotFound(path)
    method = method.upper()
    if method not in ALLOWED_METHODS:
        raise MethodNotAllowed(method)
    return QueryMode(method)
