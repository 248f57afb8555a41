from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address


def user_id_or_ip(request: Request) -> str:
    """
    Key function for SlowAPI.
    Principal resolvers store the authenticated user ID on request.state before
    the endpoint runs; unauthenticated calls fall back to the client's IP address.
    """
    user_id = getattr(request.state, "user_id", None)
    if user_id:
        return f"user:{user_id}"

    return f"ip:{get_remote_address(request)}"


limiter = Limiter(key_func=user_id_or_ip)
