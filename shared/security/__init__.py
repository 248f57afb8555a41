from .jwt_handler import create_session_token, read_session_subject
from .api_key import generate_api_key, generate_session_token, hash_token
from .dependencies import api_key_header, bearer_scheme, get_addin_credentials, get_session_subject
from .principal import ADDIN, SYSTEM, WEB, Principal
from .rate_limiter import limiter, user_id_or_ip

__all__ = [
    "create_session_token",
    "read_session_subject",
    "generate_api_key",
    "generate_session_token",
    "hash_token",
    "api_key_header",
    "bearer_scheme",
    "get_addin_credentials",
    "get_session_subject",
    "Principal",
    "SYSTEM",
    "WEB",
    "ADDIN",
    "limiter",
    "user_id_or_ip",
]
