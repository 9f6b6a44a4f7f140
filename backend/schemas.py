from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    status: str


# Stored rows, validated as they leave the repository.

class TagRecord(BaseModel):
    id: int
    name: str
    color: str
    is_archived: bool = False
    created_at: str | None = None


class RoleRecord(BaseModel):
    id: int
    name: str
    display_name: str
    description: str | None = None
    base_role: str = "custom"
    is_active: bool = True
    created_at: str | None = None
    updated_at: str | None = None


class ModuleRecord(BaseModel):
    id: int
    name: str
    display_name: str
    icon: str | None = None
    is_active: bool = True


class ModulePermissionRecord(BaseModel):
    id: int
    role_id: int
    module_id: int
    can_view: bool = False
    can_create: bool = False
    can_edit: bool = False
    can_delete: bool = False


# Request / response bodies.

class FormatRequest(BaseModel):
    content: str = ""
    css_class: str = ""


class SpanOut(BaseModel):
    kind: str
    text: str


class FormatResponse(BaseModel):
    lines: list[list[SpanOut]] = Field(default_factory=list)
    html: str
    plain_text: str


class WrapRequest(BaseModel):
    value: str = ""
    start: int = 0
    end: int = 0
    style: str = Field(description="bold | italic | underline")


class InsertRequest(BaseModel):
    value: str = ""
    start: int = 0
    end: int = 0
    text: str


class EditOut(BaseModel):
    value: str
    cursor: int


class TagIn(BaseModel):
    name: str
    color: str | None = None


class TagSelectionIn(BaseModel):
    tag_ids: list[int] = Field(default_factory=list)


class PermissionSelectionIn(BaseModel):
    permission_ids: list[str] = Field(default_factory=list)


class ChangeResultOut(BaseModel):
    item_id: str
    action: str
    status: str
    error: str | None = None


class CommitOut(BaseModel):
    ok: bool
    cancelled: bool = False
    pending_count: int = 0
    results: list[ChangeResultOut] = Field(default_factory=list)


class RoleIn(BaseModel):
    display_name: str
    description: str | None = None
    base_role: str = "custom"


class RoleUpdate(BaseModel):
    display_name: str | None = None
    description: str | None = None
    base_role: str | None = None
    is_active: bool | None = None


class RolePermissionsOut(BaseModel):
    role_id: int
    permission_ids: list[str] = Field(default_factory=list)
    permissions: list[ModulePermissionRecord] = Field(default_factory=list)


class AccessOut(BaseModel):
    role_id: int
    modules: dict[str, dict[str, bool]] = Field(default_factory=dict)
