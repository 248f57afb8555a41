from dataclasses import dataclass
from typing import Optional

WEB = "web"
ADDIN = "addin"
SYSTEM_KIND = "system"


@dataclass(frozen=True)
class Principal:
    """
    The caller of a lifecycle or transfer operation, after authentication.

    Cookie sessions (web dashboard) and bearer tokens (Revit add-in) both
    resolve to this shape, so nothing past the router knows which front door
    a request came through.
    """

    user_id: Optional[str]
    is_admin: bool = False
    kind: str = WEB
    email: Optional[str] = None

    @property
    def is_system(self) -> bool:
        return self.kind == SYSTEM_KIND

    def owns(self, owner_id: str) -> bool:
        return self.user_id is not None and self.user_id == owner_id


# The payment webhook acts as this principal
SYSTEM = Principal(user_id=None, is_admin=False, kind=SYSTEM_KIND)
