from dataclasses import dataclass
from typing import Iterable

from database import PERMISSION_ACTIONS

from .repository import Repository, permission_id


@dataclass(frozen=True)
class UserSession:
    user_id: str
    role_id: int | None = None
    base_role: str | None = None
    is_active: bool = True


def can(session: UserSession | None, permission_ids: Iterable[str], module_id: int, action: str) -> bool:
    """
    Check whether ``session`` may perform ``action`` on ``module_id``.

    Inactive or anonymous sessions are always denied and the ``admin`` base
    role is always allowed; everyone else needs the explicit permission id.
    """
    if session is None or not session.is_active:
        return False
    if action not in PERMISSION_ACTIONS:
        raise ValueError(f"action must be one of {list(PERMISSION_ACTIONS)}")
    if session.base_role == "admin":
        return True
    return permission_id(module_id, action) in set(permission_ids)


@dataclass
class AccessService:
    repo: Repository

    def session_for_role(self, user_id: str, role_id: int) -> UserSession:
        role = self.repo.get_role(role_id)
        return UserSession(user_id=user_id, role_id=role.id, base_role=role.base_role, is_active=role.is_active)

    def module_access(self, session: UserSession) -> dict[str, dict[str, bool]]:
        granted = self.repo.role_permission_ids(session.role_id) if session.role_id is not None else set()
        return {
            module.name: {action: can(session, granted, module.id, action) for action in PERMISSION_ACTIONS}
            for module in self.repo.list_modules()
        }

    def check(self, session: UserSession, module_name: str, action: str) -> bool:
        return bool(self.module_access(session).get(module_name, {}).get(action, False))
