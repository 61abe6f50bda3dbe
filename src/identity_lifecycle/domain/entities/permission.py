from __future__ import annotations

from typing import Any

from pydantic import Field

from identity_lifecycle.domain.entities.base import CamelModel


class TabPermission(CamelModel):
    key: str
    label: str | None = None
    is_visible: bool = True


class MenuPermission(CamelModel):
    menu_key: str
    menu_label: str | None = None
    is_visible: bool = False
    can_create: bool = False
    can_view: bool = False
    can_edit: bool = False
    can_delete: bool = False
    tabs: list[TabPermission] = Field(default_factory=list)

    @classmethod
    def from_item(cls, item: dict[str, Any]) -> "MenuPermission":
        # Stored flags may be missing or null; both mean "not granted".
        tabs = [
            TabPermission(
                key=t["key"],
                label=t.get("label"),
                is_visible=True if t.get("isVisible") is None else bool(t["isVisible"]),
            )
            for t in item.get("tabs") or []
        ]
        return cls(
            menu_key=item["menuKey"],
            menu_label=item.get("menuLabel"),
            is_visible=bool(item.get("isVisible") or False),
            can_create=bool(item.get("canCreate") or False),
            can_view=bool(item.get("canView") or False),
            can_edit=bool(item.get("canEdit") or False),
            can_delete=bool(item.get("canDelete") or False),
            tabs=tabs,
        )


class ResolvedPermissions(CamelModel):
    permissions: list[MenuPermission] = Field(default_factory=list)
    role_id: str | None = None
    role_name: str | None = None
    technical_user_id: str | None = None
