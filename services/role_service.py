"""
Role / permission resolution.

resolve_roles() is the only place a user's RoleRefs are turned into
ResolvedRoles. Users created before the `roles` list existed only carry the
role name in `role`; for those the role document is looked up by name.
"""

from __future__ import annotations

from repositories.role_repository import RoleRepository
from schemas.models.role import ResolvedRole, RoleRef
from schemas.models.user import UserDoc


class RoleService:
    def __init__(self, role_repo: RoleRepository) -> None:
        self._repo = role_repo

    @staticmethod
    def role_refs(user: UserDoc) -> list[RoleRef]:
        return [RoleRef(id=role_id) for role_id in user.roles]

    async def resolve_roles(self, user: UserDoc) -> list[ResolvedRole]:
        refs = self.role_refs(user)
        if refs:
            role_docs = await self._repo.find_roles(ref.id for ref in refs)
        else:
            by_name = await self._repo.find_role_by_name(user.role)
            role_docs = [by_name] if by_name else []

        resolved: list[ResolvedRole] = []
        for role_doc in role_docs:
            permission_docs = await self._repo.find_permissions(role_doc.permissions)
            resolved.append(
                ResolvedRole(
                    id=role_doc.id,
                    name=role_doc.name,
                    permissions=frozenset(p.name for p in permission_docs),
                )
            )
        return resolved

    async def effective_permissions(self, user: UserDoc) -> frozenset[str]:
        """Union of permission names across every resolved role."""
        names: set[str] = set()
        for role in await self.resolve_roles(user):
            names |= role.permissions
        return frozenset(names)
