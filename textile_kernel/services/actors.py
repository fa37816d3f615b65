"""
ActorDirectory -- role lookup for operator ids.

Roles come from configuration (``access.admin_ids`` /
``access.employee_ids``).  An id on neither list is not allowed to use
the kernel at all.
"""

from __future__ import annotations

from typing import Iterable

from textile_kernel.domain.approval import Actor
from textile_kernel.domain.risk import Role
from textile_kernel.exceptions import PermissionDeniedError


class ActorDirectory:
    def __init__(self, admin_ids: Iterable[str] = (), employee_ids: Iterable[str] = ()):
        self._admins = frozenset(str(a) for a in admin_ids)
        self._employees = frozenset(str(e) for e in employee_ids)

    def role_of(self, actor_id: str) -> Role | None:
        actor_id = str(actor_id)
        if actor_id in self._admins:
            return Role.ADMIN
        if actor_id in self._employees:
            return Role.EMPLOYEE
        return None

    def is_allowed(self, actor_id: str) -> bool:
        return self.role_of(actor_id) is not None

    def is_admin(self, actor_id: str) -> bool:
        return self.role_of(actor_id) == Role.ADMIN

    def resolve(self, actor_id: str, label: str = "") -> Actor:
        """
        Raises:
            PermissionDeniedError: The id is on neither list.
        """
        role = self.role_of(actor_id)
        if role is None:
            raise PermissionDeniedError(str(actor_id), None, "use this system")
        return Actor(str(actor_id), role, label)

    @property
    def admin_ids(self) -> frozenset[str]:
        return self._admins
