"""Bearer-token gate for agent endpoints."""

import functools
import hmac
from typing import Awaitable, Callable, Optional

from fastapi import HTTPException, Request, Response

from pushdeploy.core.exceptions import ConfigurationError

Handler = Callable[..., Awaitable[Response]]

BEARER_PREFIX = "Bearer "


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=401, detail=detail, headers={"WWW-Authenticate": "Bearer"})


def check_bearer(auth_header: Optional[str], secret: str) -> None:
    """Validate an ``Authorization`` header value against the configured secret.

    Raises HTTPException(401) if the header is missing, is not of the form
    ``Bearer <token>``, or carries a token other than ``secret``.
    """
    if not auth_header:
        raise _unauthorized("Authorization header required")
    if not auth_header.startswith(BEARER_PREFIX):
        raise _unauthorized("Invalid authorization format")
    token = auth_header[len(BEARER_PREFIX):]
    if not hmac.compare_digest(token.encode("utf-8"), secret.encode("utf-8")):
        raise _unauthorized("Invalid API key")


def require_bearer(secret: Optional[str]) -> Callable[[Handler], Handler]:
    """Build a handler transformer that checks the bearer token before the handler runs.

    The returned decorator keeps the handler's signature, so FastAPI resolves
    its parameters as usual. Handlers must take the ``Request`` as their first
    argument. The check runs before the request body is read.
    """
    if not secret:
        raise ConfigurationError("API key is required")

    def decorator(handler: Handler) -> Handler:
        @functools.wraps(handler)
        async def wrapper(request: Request, *args, **kwargs) -> Response:
            check_bearer(request.headers.get("Authorization"), secret)
            return await handler(request, *args, **kwargs)

        return wrapper

    return decorator
