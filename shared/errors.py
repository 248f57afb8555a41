"""
Typed errors raised by the lifecycle engine, the transfer coordinator and the
gateways. The API layer never builds HTTP errors for these by hand: a single
exception handler (registered in main.py) maps each class to its status code
and a message that is safe to show to the caller.
"""
import structlog
from fastapi import Request, status
from fastapi.responses import JSONResponse

logger = structlog.get_logger(__name__)


class DomainError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST
    public_message = "Request could not be completed"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.public_message)
        self.message = message or self.public_message


class InvalidTransition(DomainError):
    public_message = "Order cannot move to the requested status"


class ConcurrentTransition(InvalidTransition):
    """The conditional status write matched no row: another request moved the order first."""

    public_message = "Order status changed while the request was in flight"


class InvalidState(DomainError):
    public_message = "Order is not in the required status"


class PreconditionUnmet(DomainError):
    public_message = "Order does not meet the requirements for this action"


class InvalidUploadUrl(DomainError):
    public_message = "Upload URL does not belong to this order"


class InvalidWebhook(DomainError):
    public_message = "Webhook payload could not be verified"


class Unauthenticated(DomainError):
    status_code = status.HTTP_401_UNAUTHORIZED
    public_message = "Not authenticated"


class Forbidden(DomainError):
    status_code = status.HTTP_403_FORBIDDEN
    public_message = "Forbidden"


class NotFound(DomainError):
    status_code = status.HTTP_404_NOT_FOUND
    public_message = "Not found"


class UpstreamUnavailable(DomainError):
    status_code = status.HTTP_502_BAD_GATEWAY
    public_message = "An upstream service is unavailable, please try again"


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    log = logger.warning if exc.status_code >= 500 else logger.info
    log(
        "domain_error",
        error=type(exc).__name__,
        detail=exc.message,
        path=request.url.path,
        method=request.method,
    )
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, Unauthenticated) else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.message},
        headers=headers,
    )
