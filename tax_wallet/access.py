"""
Access Control

Single-owner gate consumed by the wallet service for privileged operations.
The owner is fixed when the value is constructed.
"""

from .accounts import is_null_account, require_account
from .errors import InvalidOwner, Unauthorized


class AccessControl:
    """Holds the owner identity and checks callers against it"""

    def __init__(self, owner: str):
        if owner is None or is_null_account(require_account(owner, "owner")):
            raise InvalidOwner("Owner must not be the null identity")
        self._owner = owner

    @property
    def owner(self) -> str:
        return self._owner

    def is_owner(self, caller: str) -> bool:
        return caller == self._owner

    def require_owner(self, caller: str) -> None:
        """Raise Unauthorized unless caller is the owner"""
        if not self.is_owner(caller):
            raise Unauthorized(f"Caller {caller} is not the owner")

    def __repr__(self) -> str:
        return f"AccessControl(owner={self._owner!r})"
