"""Role-based access control.

Roles map to fixed permission sets. Resource-scoped checks go through
:data:`RESOURCE_RULES`: an action is allowed when the role holds its "any"
permission, or holds its "own" permission and the principal owns the
resource. Adding a role means adding a row to :data:`ROLE_PERMISSIONS`.
"""
from __future__ import annotations

import enum
from types import MappingProxyType
from typing import Mapping

from shareportal.core.principal import OwnedResource, Principal, Role


class Permission(str, enum.Enum):
    FILES_VIEW_OWN = "files.view.own"
    FILES_VIEW_ALL = "files.view.all"
    FILES_UPLOAD = "files.upload"
    FILES_EDIT_OWN = "files.edit.own"
    FILES_EDIT_ALL = "files.edit.all"
    FILES_DELETE_OWN = "files.delete.own"
    FILES_DELETE_ALL = "files.delete.all"
    FILES_SHARE = "files.share"
    FILES_SHARE_ALL = "files.share.all"
    FILES_DOWNLOAD_SHARED = "files.download.shared"
    USERS_VIEW = "users.view"
    USERS_CREATE = "users.create"
    USERS_EDIT = "users.edit"
    USERS_DELETE = "users.delete"
    ADMIN_ACCESS = "admin.access"
    SETTINGS_MANAGE = "settings.manage"


class Action(str, enum.Enum):
    VIEW = "view"
    EDIT = "edit"
    DELETE = "delete"
    SHARE = "share"


_USER_PERMISSIONS = frozenset(
    {
        Permission.FILES_VIEW_OWN,
        Permission.FILES_UPLOAD,
        Permission.FILES_EDIT_OWN,
        Permission.FILES_DELETE_OWN,
        Permission.FILES_SHARE,
        Permission.FILES_DOWNLOAD_SHARED,
    }
)

ROLE_PERMISSIONS: Mapping[Role, frozenset[Permission]] = MappingProxyType(
    {
        Role.ADMIN: frozenset(Permission),
        Role.USER: _USER_PERMISSIONS,
        Role.ANONYMOUS: frozenset({Permission.FILES_DOWNLOAD_SHARED}),
    }
)

# action -> (permission on own resources, permission on any resource)
RESOURCE_RULES: Mapping[Action, tuple[Permission, Permission]] = MappingProxyType(
    {
        Action.VIEW: (Permission.FILES_VIEW_OWN, Permission.FILES_VIEW_ALL),
        Action.EDIT: (Permission.FILES_EDIT_OWN, Permission.FILES_EDIT_ALL),
        Action.DELETE: (Permission.FILES_DELETE_OWN, Permission.FILES_DELETE_ALL),
        Action.SHARE: (Permission.FILES_SHARE, Permission.FILES_SHARE_ALL),
    }
)

ROLE_DISPLAY_NAMES: Mapping[Role, str] = MappingProxyType(
    {Role.ADMIN: "Administrator", Role.USER: "User", Role.ANONYMOUS: "Guest"}
)


def role_permissions(role: Role) -> frozenset[Permission]:
    return ROLE_PERMISSIONS.get(role, frozenset())


def role_has_permission(role: Role, permission: Permission) -> bool:
    return permission in role_permissions(role)


def has_permission(principal: Principal, permission: Permission) -> bool:
    return role_has_permission(principal.role, permission)


def can(principal: Principal, action: Action, resource: OwnedResource) -> bool:
    own_permission, any_permission = RESOURCE_RULES[action]
    if has_permission(principal, any_permission):
        return True
    return has_permission(principal, own_permission) and principal.owns(resource)


def can_view(principal: Principal, resource: OwnedResource) -> bool:
    return can(principal, Action.VIEW, resource)


def can_edit(principal: Principal, resource: OwnedResource) -> bool:
    return can(principal, Action.EDIT, resource)


def can_delete(principal: Principal, resource: OwnedResource) -> bool:
    return can(principal, Action.DELETE, resource)


def can_share(principal: Principal, resource: OwnedResource) -> bool:
    return can(principal, Action.SHARE, resource)
