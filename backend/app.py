import logging

from fastapi import FastAPI, HTTPException

from database import DBManager, PERMISSION_ACTIONS
from formatted_text import format_text, render_html, to_plain_text
from text_toolbar import apply_format, insert_text

from .config import Settings, configure_logging
from .schemas import (
    AccessOut,
    ChangeResultOut,
    CommitOut,
    EditOut,
    FormatRequest,
    FormatResponse,
    HealthResponse,
    InsertRequest,
    ModuleRecord,
    PermissionSelectionIn,
    RoleIn,
    RolePermissionsOut,
    RoleRecord,
    RoleUpdate,
    SpanOut,
    TagIn,
    TagRecord,
    TagSelectionIn,
    WrapRequest,
)
from .services.access import AccessService
from .services.repository import (
    NotFoundError,
    PermissionAssociations,
    Repository,
    TagAssociations,
    parse_permission_id,
    permission_id,
)
from .services.selection import BatchResult, SelectionDiff


logger = logging.getLogger(__name__)


def _commit_out(result: BatchResult, engine: SelectionDiff) -> CommitOut:
    return CommitOut(
        ok=result.ok,
        cancelled=result.cancelled,
        pending_count=engine.pending_count,
        results=[
            ChangeResultOut(item_id=str(r.item_id), action=r.action, status=r.status, error=r.error)
            for r in sorted(result.results.values(), key=lambda r: str(r.item_id))
        ],
    )


def create_app(app_settings: Settings | None = None) -> FastAPI:
    app_settings = app_settings or Settings()
    configure_logging(app_settings.log_level)

    app = FastAPI(
        title="ATS API",
        version="0.1.0",
        description="Formatting, tagging and access-profile endpoints for the applicant tracking system.",
    )

    db = DBManager(db_path=app_settings.db_path)
    repo = Repository(db=db)
    access = AccessService(repo=repo)

    def _engine(store, parent_id) -> SelectionDiff:
        return SelectionDiff(store=store, parent_id=parent_id, max_workers=app_settings.commit_workers)

    @app.get("/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        return HealthResponse(status="ok")

    # --- formatting ---

    @app.post("/v1/format", response_model=FormatResponse)
    def format_content(payload: FormatRequest) -> FormatResponse:
        lines = [[SpanOut(kind=s.kind, text=s.text) for s in spans] for spans in format_text(payload.content)]
        return FormatResponse(
            lines=lines,
            html=render_html(payload.content, payload.css_class),
            plain_text=to_plain_text(payload.content),
        )

    @app.post("/v1/format/wrap", response_model=EditOut)
    def wrap_selection(payload: WrapRequest) -> EditOut:
        try:
            edit = apply_format(payload.value, payload.start, payload.end, payload.style)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return EditOut(value=edit.value, cursor=edit.cursor)

    @app.post("/v1/format/insert", response_model=EditOut)
    def insert_at_cursor(payload: InsertRequest) -> EditOut:
        edit = insert_text(payload.value, payload.start, payload.end, payload.text)
        return EditOut(value=edit.value, cursor=edit.cursor)

    # --- tags ---

    @app.get("/v1/tags", response_model=list[TagRecord])
    def list_tags(include_archived: bool = True) -> list[TagRecord]:
        return repo.list_tags(include_archived=include_archived)

    @app.post("/v1/tags", response_model=TagRecord)
    def create_tag(payload: TagIn) -> TagRecord:
        try:
            return repo.create_tag(payload.name, payload.color)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

    @app.put("/v1/tags/{tag_id}", response_model=TagRecord)
    def update_tag(tag_id: int, payload: TagIn) -> TagRecord:
        try:
            return repo.update_tag(tag_id, payload.name, payload.color)
        except NotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

    @app.post("/v1/tags/{tag_id}/archive", response_model=TagRecord)
    def archive_tag(tag_id: int) -> TagRecord:
        try:
            return repo.archive_tag(tag_id)
        except NotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc

    @app.post("/v1/tags/{tag_id}/restore", response_model=TagRecord)
    def restore_tag(tag_id: int) -> TagRecord:
        try:
            return repo.restore_tag(tag_id)
        except NotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc

    @app.get("/v1/applications/{application_id}/tags", response_model=list[TagRecord])
    def list_application_tags(application_id: str) -> list[TagRecord]:
        return repo.list_application_tags(application_id)

    @app.put("/v1/applications/{application_id}/tags", response_model=CommitOut)
    def set_application_tags(application_id: str, payload: TagSelectionIn) -> CommitOut:
        # Archived tags are not offered for selection, so they are never toggled.
        available = [t.id for t in repo.list_tags(include_archived=False)]
        requested = set(payload.tag_ids)
        unknown = requested.difference(available)
        if unknown:
            raise HTTPException(status_code=400, detail=f"Unknown or archived tag ids: {sorted(unknown)}")

        engine = _engine(TagAssociations(repo=repo), application_id)
        engine.initialize(repo.list_application_tag_ids(application_id))
        for tag_id in available:
            engine.toggle(tag_id, tag_id in requested)
        result = engine.commit()
        logger.info("Application %s tags saved: ok=%s changes=%d", application_id, result.ok, len(result.results))
        return _commit_out(result, engine)

    # --- access profiles ---

    @app.get("/v1/modules", response_model=list[ModuleRecord])
    def list_modules() -> list[ModuleRecord]:
        return repo.list_modules()

    @app.get("/v1/roles", response_model=list[RoleRecord])
    def list_roles() -> list[RoleRecord]:
        return repo.list_roles()

    @app.post("/v1/roles", response_model=RoleRecord)
    def create_role(payload: RoleIn) -> RoleRecord:
        try:
            return repo.create_role(payload.display_name, payload.description, payload.base_role)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

    @app.put("/v1/roles/{role_id}", response_model=RoleRecord)
    def update_role(role_id: int, payload: RoleUpdate) -> RoleRecord:
        try:
            return repo.update_role(
                role_id,
                display_name=payload.display_name,
                description=payload.description,
                base_role=payload.base_role,
                is_active=payload.is_active,
            )
        except NotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

    @app.post("/v1/roles/{role_id}/duplicate", response_model=RoleRecord)
    def duplicate_role(role_id: int) -> RoleRecord:
        try:
            return repo.duplicate_role(role_id)
        except NotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

    @app.post("/v1/roles/{role_id}/archive", response_model=RoleRecord)
    def archive_role(role_id: int) -> RoleRecord:
        try:
            return repo.archive_role(role_id)
        except NotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc

    @app.get("/v1/roles/{role_id}/permissions", response_model=RolePermissionsOut)
    def get_role_permissions(role_id: int) -> RolePermissionsOut:
        try:
            repo.get_role(role_id)
        except NotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return RolePermissionsOut(
            role_id=role_id,
            permission_ids=sorted(repo.role_permission_ids(role_id)),
            permissions=repo.list_permissions(role_id),
        )

    @app.put("/v1/roles/{role_id}/permissions", response_model=CommitOut)
    def set_role_permissions(role_id: int, payload: PermissionSelectionIn) -> CommitOut:
        try:
            repo.get_role(role_id)
            requested = {permission_id(*parse_permission_id(p)) for p in payload.permission_ids}
        except NotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

        available = [permission_id(m.id, action) for m in repo.list_modules() for action in PERMISSION_ACTIONS]
        unknown = requested.difference(available)
        if unknown:
            raise HTTPException(status_code=400, detail=f"Unknown permission ids: {sorted(unknown)}")

        engine = _engine(PermissionAssociations(repo=repo), role_id)
        engine.initialize(repo.role_permission_ids(role_id))
        for perm_id in available:
            engine.toggle(perm_id, perm_id in requested)
        result = engine.commit()
        logger.info("Profile %s permissions saved: ok=%s changes=%d", role_id, result.ok, len(result.results))
        return _commit_out(result, engine)

    @app.get("/v1/roles/{role_id}/access", response_model=AccessOut)
    def role_access(role_id: int, user_id: str = "anonymous") -> AccessOut:
        try:
            session = access.session_for_role(user_id=user_id, role_id=role_id)
        except NotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return AccessOut(role_id=role_id, modules=access.module_access(session))

    return app
