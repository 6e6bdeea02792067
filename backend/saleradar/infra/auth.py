"""Request identity resolution from trusted gateway headers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

from fastapi import Header, HTTPException, status


@dataclass(frozen=True)
class AuthenticatedUser:
	id: str
	roles: Tuple[str, ...] = ()

	def has_role(self, role: str) -> bool:
		return role in self.roles

	@property
	def is_admin(self) -> bool:
		return self.has_role("admin")


def _parse_roles(raw: Optional[str]) -> Tuple[str, ...]:
	if not raw:
		return ()
	return tuple(role.strip() for role in raw.split(",") if role.strip())


async def get_current_user(
	x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
	x_user_roles: Optional[str] = Header(default=None, alias="X-User-Roles"),
) -> AuthenticatedUser:
	"""Identity is asserted by the fronting gateway through ``X-User-*`` headers."""
	if not x_user_id or not x_user_id.strip():
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="missing_user")
	return AuthenticatedUser(id=x_user_id.strip(), roles=_parse_roles(x_user_roles))


__all__ = ["AuthenticatedUser", "get_current_user"]
