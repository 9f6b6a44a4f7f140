import re
import sqlite3
from dataclasses import dataclass

from database import DBManager, PERMISSION_ACTIONS, now_iso
from tagging import normalize_tag_color, normalize_tag_name

from ..schemas import ModulePermissionRecord, ModuleRecord, RoleRecord, TagRecord


BASE_ROLES = ("admin", "rh", "head", "viewer", "custom")

_TAG_COLUMNS = "id, name, color, is_archived, created_at"
_ROLE_COLUMNS = "id, name, display_name, description, base_role, is_active, created_at, updated_at"
_PERMISSION_COLUMNS = "id, role_id, module_id, can_view, can_create, can_edit, can_delete"


class NotFoundError(ValueError):
    pass


def permission_id(module_id: int, action: str) -> str:
    return f"{int(module_id)}:{action}"


def parse_permission_id(value) -> tuple[int, str]:
    module_part, sep, action = str(value or "").strip().partition(":")
    if not sep or action not in PERMISSION_ACTIONS:
        raise ValueError(f"Invalid permission id: {value!r} (expected '<module_id>:<action>').")
    try:
        return int(module_part), action
    except ValueError:
        raise ValueError(f"Invalid permission id: {value!r} (module id must be an integer).") from None


def _role_slug(display_name: str) -> str:
    slug = re.sub(r"\s+", "_", str(display_name or "").strip().lower())
    if not slug:
        raise ValueError("Profile name is required.")
    return slug


def _check_base_role(base_role: str) -> str:
    value = str(base_role or "").strip().lower()
    if value not in BASE_ROLES:
        raise ValueError(f"base_role must be one of {list(BASE_ROLES)}")
    return value


@dataclass
class Repository:
    db: DBManager

    # --- tags ---

    def list_tags(self, include_archived: bool = True) -> list[TagRecord]:
        where = "" if include_archived else " WHERE is_archived = 0"
        rows = self.db.fetch_records(f"SELECT {_TAG_COLUMNS} FROM tags{where} ORDER BY name COLLATE NOCASE, id")
        return [TagRecord.model_validate(row) for row in rows]

    def get_tag(self, tag_id: int) -> TagRecord:
        rows = self.db.fetch_records(f"SELECT {_TAG_COLUMNS} FROM tags WHERE id = ? LIMIT 1", (int(tag_id),))
        if not rows:
            raise NotFoundError(f"Tag {tag_id} not found")
        return TagRecord.model_validate(rows[0])

    def create_tag(self, name: str, color: str | None = None) -> TagRecord:
        tag_id = self.db.execute_query(
            "INSERT INTO tags (name, color, is_archived, created_at) VALUES (?, ?, 0, ?)",
            (normalize_tag_name(name), normalize_tag_color(color), now_iso()),
        )
        return self.get_tag(tag_id)

    def update_tag(self, tag_id: int, name: str, color: str | None = None) -> TagRecord:
        current = self.get_tag(tag_id)
        self.db.execute_query(
            "UPDATE tags SET name = ?, color = ? WHERE id = ?",
            (normalize_tag_name(name), normalize_tag_color(color or current.color), int(tag_id)),
        )
        return self.get_tag(tag_id)

    def set_tag_archived(self, tag_id: int, archived: bool) -> TagRecord:
        self.get_tag(tag_id)
        self.db.execute_query("UPDATE tags SET is_archived = ? WHERE id = ?", (int(bool(archived)), int(tag_id)))
        return self.get_tag(tag_id)

    def archive_tag(self, tag_id: int) -> TagRecord:
        return self.set_tag_archived(tag_id, True)

    def restore_tag(self, tag_id: int) -> TagRecord:
        return self.set_tag_archived(tag_id, False)

    # --- application tags ---

    def list_application_tags(self, application_id: str) -> list[TagRecord]:
        rows = self.db.fetch_records(
            """SELECT t.id, t.name, t.color, t.is_archived, t.created_at
               FROM application_tags at
               JOIN tags t ON t.id = at.tag_id
               WHERE at.application_id = ?
               ORDER BY t.name COLLATE NOCASE, t.id""",
            (str(application_id),),
        )
        return [TagRecord.model_validate(row) for row in rows]

    def list_application_tag_ids(self, application_id: str) -> set[int]:
        return {tag.id for tag in self.list_application_tags(application_id)}

    def add_tag_to_application(self, application_id: str, tag_id: int) -> None:
        self.get_tag(tag_id)
        self.db.execute_query(
            "INSERT OR IGNORE INTO application_tags (application_id, tag_id, created_at) VALUES (?, ?, ?)",
            (str(application_id), int(tag_id), now_iso()),
        )

    def remove_tag_from_application(self, application_id: str, tag_id: int) -> None:
        self.db.execute_query(
            "DELETE FROM application_tags WHERE application_id = ? AND tag_id = ?",
            (str(application_id), int(tag_id)),
        )

    # --- access profiles ---

    def list_roles(self) -> list[RoleRecord]:
        rows = self.db.fetch_records(f"SELECT {_ROLE_COLUMNS} FROM custom_roles ORDER BY display_name COLLATE NOCASE, id")
        return [RoleRecord.model_validate(row) for row in rows]

    def get_role(self, role_id: int) -> RoleRecord:
        rows = self.db.fetch_records(f"SELECT {_ROLE_COLUMNS} FROM custom_roles WHERE id = ? LIMIT 1", (int(role_id),))
        if not rows:
            raise NotFoundError(f"Profile {role_id} not found")
        return RoleRecord.model_validate(rows[0])

    def create_role(
        self,
        display_name: str,
        description: str | None = None,
        base_role: str = "custom",
        name: str | None = None,
    ) -> RoleRecord:
        display = str(display_name or "").strip()
        if not display:
            raise ValueError("Profile name is required.")
        slug = _role_slug(name or display)
        stamp = now_iso()
        try:
            role_id = self.db.execute_query(
                """INSERT INTO custom_roles (name, display_name, description, base_role, is_active, created_at, updated_at)
                   VALUES (?, ?, ?, ?, 1, ?, ?)""",
                (slug, display, (description or None), _check_base_role(base_role), stamp, stamp),
            )
        except sqlite3.IntegrityError as exc:
            raise ValueError(f"Profile '{slug}' already exists.") from exc
        return self.get_role(role_id)

    def update_role(
        self,
        role_id: int,
        display_name: str | None = None,
        description: str | None = None,
        base_role: str | None = None,
        is_active: bool | None = None,
    ) -> RoleRecord:
        self.get_role(role_id)
        updates: dict = {}
        if display_name is not None:
            display = str(display_name).strip()
            if not display:
                raise ValueError("Profile name is required.")
            updates["display_name"] = display
        if description is not None:
            updates["description"] = description or None
        if base_role is not None:
            updates["base_role"] = _check_base_role(base_role)
        if is_active is not None:
            updates["is_active"] = int(bool(is_active))
        updates["updated_at"] = now_iso()
        assignments = ", ".join(f"{column} = ?" for column in updates)
        self.db.execute_query(
            f"UPDATE custom_roles SET {assignments} WHERE id = ?",
            (*updates.values(), int(role_id)),
        )
        return self.get_role(role_id)

    def archive_role(self, role_id: int) -> RoleRecord:
        return self.update_role(role_id, is_active=False)

    def duplicate_role(self, role_id: int) -> RoleRecord:
        source = self.get_role(role_id)
        copy = self.create_role(
            display_name=f"{source.display_name} (Cópia)",
            description=source.description,
            base_role=source.base_role,
            name=f"{source.name}_copy",
        )
        rows = [
            (copy.id, p.module_id, int(p.can_view), int(p.can_create), int(p.can_edit), int(p.can_delete))
            for p in self.list_permissions(source.id)
        ]
        if rows:
            self.db.executemany(
                """INSERT INTO role_module_permissions (role_id, module_id, can_view, can_create, can_edit, can_delete)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                rows,
            )
        return copy

    # --- modules & permissions ---

    def list_modules(self) -> list[ModuleRecord]:
        rows = self.db.fetch_records(
            """SELECT id, name, display_name, icon, is_active FROM modules
               WHERE is_active = 1 AND name LIKE 'ats_%'
               ORDER BY display_name COLLATE NOCASE, id"""
        )
        return [ModuleRecord.model_validate(row) for row in rows]

    def list_permissions(self, role_id: int) -> list[ModulePermissionRecord]:
        rows = self.db.fetch_records(
            f"SELECT {_PERMISSION_COLUMNS} FROM role_module_permissions WHERE role_id = ? ORDER BY module_id",
            (int(role_id),),
        )
        return [ModulePermissionRecord.model_validate(row) for row in rows]

    def role_permission_ids(self, role_id: int) -> set[str]:
        granted = set()
        for perm in self.list_permissions(role_id):
            for action in PERMISSION_ACTIONS:
                if getattr(perm, action):
                    granted.add(permission_id(perm.module_id, action))
        return granted

    def grant_permission(self, role_id: int, perm_id: str) -> None:
        module_id, action = parse_permission_id(perm_id)
        # action is one of PERMISSION_ACTIONS, so it is safe as a column name.
        self.db.execute_query(
            f"""INSERT INTO role_module_permissions (role_id, module_id, {action}) VALUES (?, ?, 1)
                ON CONFLICT(role_id, module_id) DO UPDATE SET {action} = 1""",
            (int(role_id), module_id),
        )

    def revoke_permission(self, role_id: int, perm_id: str) -> None:
        module_id, action = parse_permission_id(perm_id)
        self.db.execute_query(
            f"UPDATE role_module_permissions SET {action} = 0 WHERE role_id = ? AND module_id = ?",
            (int(role_id), module_id),
        )


@dataclass
class TagAssociations:
    """Tags attached to a candidate application."""

    repo: Repository

    def add_association(self, application_id, tag_id) -> None:
        self.repo.add_tag_to_application(application_id, tag_id)

    def remove_association(self, application_id, tag_id) -> None:
        self.repo.remove_tag_from_application(application_id, tag_id)


@dataclass
class PermissionAssociations:
    """Module permissions granted to an access profile."""

    repo: Repository

    def add_association(self, role_id, perm_id) -> None:
        self.repo.grant_permission(role_id, perm_id)

    def remove_association(self, role_id, perm_id) -> None:
        self.repo.revoke_permission(role_id, perm_id)
