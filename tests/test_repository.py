import pytest

from backend.services.access import AccessService, UserSession, can
from backend.services.repository import (
    NotFoundError,
    PermissionAssociations,
    TagAssociations,
    parse_permission_id,
    permission_id,
)
from backend.services.selection import SelectionDiff
from tagging import DEFAULT_TAG_COLOR, partition_tags


def _module_id(repo, name):
    return next(m.id for m in repo.list_modules() if m.name == name)


def test_default_modules_are_seeded(repo):
    names = {m.name for m in repo.list_modules()}
    assert {"ats_jobs", "ats_funnel", "ats_settings"} <= names


def test_create_tag_normalizes_input(repo):
    tag = repo.create_tag("  Senior   Dev ", None)
    assert tag.name == "Senior Dev"
    assert tag.color == DEFAULT_TAG_COLOR
    assert tag.is_archived is False
    assert tag.created_at


@pytest.mark.parametrize("name,color", [("   ", "#ffffff"), ("Valid", "red"), ("Valid", "#12345")])
def test_create_tag_rejects_invalid_input(repo, name, color):
    with pytest.raises(ValueError):
        repo.create_tag(name, color)


def test_archive_and_restore_tag(repo):
    a = repo.create_tag("Alpha", "#FF0000")
    b = repo.create_tag("Beta", "#00ff00")
    repo.archive_tag(a.id)

    assert [t.name for t in repo.list_tags(include_archived=False)] == ["Beta"]
    active, archived = partition_tags(repo.list_tags())
    assert [t.id for t in active] == [b.id]
    assert [t.id for t in archived] == [a.id]

    restored = repo.restore_tag(a.id)
    assert restored.is_archived is False
    assert restored.color == "#ff0000"


def test_missing_tag_raises_not_found(repo):
    with pytest.raises(NotFoundError):
        repo.get_tag(999)
    with pytest.raises(NotFoundError):
        repo.update_tag(999, "x")


def test_application_tag_associations_are_idempotent(repo):
    tag = repo.create_tag("Remote", "#123abc")
    repo.add_tag_to_application("app-1", tag.id)
    repo.add_tag_to_application("app-1", tag.id)
    assert repo.list_application_tag_ids("app-1") == {tag.id}

    repo.remove_tag_from_application("app-1", tag.id)
    repo.remove_tag_from_application("app-1", tag.id)
    assert repo.list_application_tag_ids("app-1") == set()


def test_adding_unknown_tag_fails(repo):
    with pytest.raises(NotFoundError):
        repo.add_tag_to_application("app-1", 42)


def test_tag_selection_commit_against_database(repo):
    a, b, c = (repo.create_tag(name, None) for name in ("A", "B", "C"))
    repo.add_tag_to_application("app-1", a.id)
    repo.add_tag_to_application("app-1", b.id)

    engine = SelectionDiff(store=TagAssociations(repo=repo), parent_id="app-1")
    engine.initialize(repo.list_application_tag_ids("app-1"))
    engine.toggle(a.id, False)
    engine.toggle(c.id, True)
    result = engine.commit()

    assert result.ok
    assert repo.list_application_tag_ids("app-1") == {b.id, c.id}


def test_permission_id_round_trip_and_validation():
    assert parse_permission_id(permission_id(3, "can_edit")) == (3, "can_edit")
    for bad in ("3", "x:can_view", "3:can_fly", None):
        with pytest.raises(ValueError):
            parse_permission_id(bad)


def test_role_crud_and_slug(repo):
    role = repo.create_role("Recrutador Senior", "Time de RH", "rh")
    assert role.name == "recrutador_senior"
    assert role.base_role == "rh"
    assert role.is_active is True

    updated = repo.update_role(role.id, description="", base_role="head")
    assert updated.description is None
    assert updated.base_role == "head"

    with pytest.raises(ValueError):
        repo.create_role("recrutador  senior")
    with pytest.raises(ValueError):
        repo.create_role("Other", base_role="owner")

    assert repo.archive_role(role.id).is_active is False


def test_grant_and_revoke_permissions(repo):
    role = repo.create_role("Viewer")
    jobs = _module_id(repo, "ats_jobs")
    view, edit = permission_id(jobs, "can_view"), permission_id(jobs, "can_edit")

    repo.grant_permission(role.id, view)
    repo.grant_permission(role.id, edit)
    repo.grant_permission(role.id, view)
    assert repo.role_permission_ids(role.id) == {view, edit}
    assert len(repo.list_permissions(role.id)) == 1

    repo.revoke_permission(role.id, edit)
    repo.revoke_permission(role.id, permission_id(_module_id(repo, "ats_users"), "can_delete"))
    assert repo.role_permission_ids(role.id) == {view}


def test_permission_selection_commit_runs_concurrently_on_one_row(repo):
    role = repo.create_role("Ops")
    settings = _module_id(repo, "ats_settings")
    wanted = {permission_id(settings, action) for action in ("can_view", "can_create", "can_edit", "can_delete")}

    engine = SelectionDiff(store=PermissionAssociations(repo=repo), parent_id=role.id, max_workers=4)
    engine.initialize(repo.role_permission_ids(role.id))
    for perm in wanted:
        engine.toggle(perm, True)
    result = engine.commit()

    assert result.ok
    assert repo.role_permission_ids(role.id) == wanted


def test_duplicate_role_copies_permissions(repo):
    role = repo.create_role("Head de Vagas", base_role="head")
    perm = permission_id(_module_id(repo, "ats_jobs"), "can_create")
    repo.grant_permission(role.id, perm)

    copy = repo.duplicate_role(role.id)

    assert copy.name == "head_de_vagas_copy"
    assert copy.display_name == "Head de Vagas (Cópia)"
    assert copy.base_role == "head"
    assert repo.role_permission_ids(copy.id) == {perm}


def test_access_checks(repo):
    jobs = _module_id(repo, "ats_jobs")
    custom = repo.create_role("Custom")
    repo.grant_permission(custom.id, permission_id(jobs, "can_view"))
    admin = repo.create_role("Admins", base_role="admin")
    service = AccessService(repo=repo)

    session = service.session_for_role("u1", custom.id)
    access = service.module_access(session)
    assert access["ats_jobs"] == {"can_view": True, "can_create": False, "can_edit": False, "can_delete": False}
    assert service.check(session, "ats_jobs", "can_view")
    assert not service.check(session, "ats_settings", "can_view")

    admin_session = service.session_for_role("u2", admin.id)
    assert all(all(actions.values()) for actions in service.module_access(admin_session).values())

    inactive = UserSession(user_id="u3", role_id=admin.id, base_role="admin", is_active=False)
    assert not can(inactive, set(), jobs, "can_view")
    assert not can(None, {permission_id(jobs, "can_view")}, jobs, "can_view")
    with pytest.raises(ValueError):
        can(session, set(), jobs, "can_fly")
