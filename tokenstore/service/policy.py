from __future__ import annotations

from typing import Dict, Mapping, Optional, Union

from tokenstore.config import Settings
from tokenstore.storage.models import LoginType, Scope

DEFAULT_ROLE_SCOPES: Dict[str, Scope] = {
    "admin": Scope.ADMIN,
}


class SessionPolicy:
    """Expiry per login channel and scope per role."""

    def __init__(
        self,
        expiries: Mapping[LoginType, int],
        *,
        role_scopes: Optional[Mapping[str, Scope]] = None,
        default_role: str = "admin",
    ):
        missing = [lt.value for lt in LoginType if lt not in expiries]
        if missing:
            raise ValueError(f"missing expiry for login types: {', '.join(missing)}")
        self._expiries = {LoginType(k): int(v) for k, v in expiries.items()}
        self._role_scopes: Dict[str, Scope] = dict(
            DEFAULT_ROLE_SCOPES if role_scopes is None else role_scopes
        )
        self.default_role = default_role

    @classmethod
    def from_settings(cls, settings: Settings) -> "SessionPolicy":
        return cls(
            {
                LoginType.WEB: settings.session_ttl_web_seconds,
                LoginType.APP: settings.session_ttl_app_seconds,
                LoginType.WX: settings.session_ttl_wx_seconds,
                LoginType.ALIPAY: settings.session_ttl_alipay_seconds,
            },
            default_role=settings.session_default_role,
        )

    def expiry_for(self, login_type: Union[LoginType, str]) -> int:
        """TTL in seconds for a login channel; unknown channels get the app TTL."""
        try:
            return self._expiries[LoginType(login_type)]
        except ValueError:
            return self._expiries[LoginType.APP]

    def scope_for(self, role: Optional[str] = None) -> Scope:
        if role is None:
            role = self.default_role
        return self._role_scopes.get(role, Scope.NONE)

    def register_role(self, role: str, scope: Scope) -> None:
        self._role_scopes[role] = Scope(scope)


__all__ = ["DEFAULT_ROLE_SCOPES", "SessionPolicy"]
