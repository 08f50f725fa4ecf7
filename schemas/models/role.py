"""
Role / permission document model.

Maps to the `role-permissions` MongoDB collection. Roles and permissions
share one collection, distinguished by `type`; `(name, type)` is unique.
A role document lists the ids of the permission documents attached to it.

RoleRef and ResolvedRole are the two shapes a role takes in the auth core:
a bare reference as stored on the user, and the resolved form carrying
permission names. services.role_service.resolve_roles() is the only place
that turns one into the other.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict

from schemas.models.base import MongoBaseModel, PyObjectId

ROLE_TYPE = "role"
PERMISSION_TYPE = "permission"


class RolePermissionDoc(MongoBaseModel):
    """Document model for the `role-permissions` collection."""

    name: str
    description: str
    type: Literal["role", "permission"]
    category: Optional[str] = None
    permissions: list[PyObjectId] = []
    is_system: bool = False
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class RoleRef(BaseModel):
    """A role as stored on a user document: its id only."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    id: PyObjectId


class ResolvedRole(BaseModel):
    """A role with its directly attached permission names."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    id: PyObjectId
    name: str
    permissions: frozenset[str] = frozenset()
