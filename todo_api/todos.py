"""
Tenant-scoped todo CRUD on a single route, dispatched by HTTP method.
Authentication has already happened in the auth middleware; handlers only read X-Tenant-ID.
"""
import logging
import uuid
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Header, Request, Response, status
from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictStr, model_validator

from todo_api.errors import InvalidTenantError
from todo_api.store import TodoItem, TodoStore

logger = logging.getLogger(__name__)

router = APIRouter()


class Todo(BaseModel):
    """Wire form of a todo item."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(alias="ID")
    title: str = Field(alias="Title")
    completed: bool = Field(alias="Completed")


class RequestBody(BaseModel):
    """Body keys match field aliases case-insensitively; a later duplicate key wins."""

    @model_validator(mode="before")
    @classmethod
    def fold_keys(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        aliases = {(f.alias or name).lower(): f.alias or name for name, f in cls.model_fields.items()}
        folded = {}
        for key, value in data.items():
            folded[aliases.get(key.lower(), key) if isinstance(key, str) else key] = value
        return folded


class CreateTodoRequest(RequestBody):
    title: StrictStr = Field(alias="Title")


class UpdateTodoRequest(RequestBody):
    id: StrictStr = Field(alias="ID")
    completed: StrictBool = Field(alias="Completed")


class DeleteTodoRequest(RequestBody):
    id: StrictStr = Field(alias="ID")


def get_tenant(x_tenant_id: Annotated[str | None, Header()] = None) -> str:
    """X-Tenant-ID, used verbatim as the partition key suffix. Blank is rejected."""
    if x_tenant_id is None or not x_tenant_id.strip():
        raise InvalidTenantError()
    return x_tenant_id


def get_store(request: Request) -> TodoStore:
    return request.app.state.store


def new_todo_id() -> str:
    return uuid.uuid4().hex


Tenant = Annotated[str, Depends(get_tenant)]
Store = Annotated[TodoStore, Depends(get_store)]


@router.get("/", response_model=list[Todo])
def list_todos(tenant: Tenant, store: Store):
    """All todos of the tenant, ordered by sort key."""
    return [Todo(id=t.id, title=t.title, completed=t.completed) for t in store.query(tenant)]


@router.post("/", status_code=status.HTTP_201_CREATED)
def create_todo(body: CreateTodoRequest, tenant: Tenant, store: Store):
    todo_id = new_todo_id()
    store.put(TodoItem(tenant=tenant, id=todo_id, title=body.title, completed=False))
    logger.info("Created todo %s for tenant %s", todo_id, tenant)
    return Response(status_code=status.HTTP_201_CREATED)


@router.put("/")
def update_todo(body: UpdateTodoRequest, tenant: Tenant, store: Store):
    """Set the completed flag. Last write wins."""
    store.update_completed(tenant, body.id, body.completed)
    return Response(status_code=status.HTTP_200_OK)


@router.delete("/")
def delete_todo(body: DeleteTodoRequest, tenant: Tenant, store: Store):
    """Idempotent: deleting an unknown id succeeds."""
    store.delete(tenant, body.id)
    return Response(status_code=status.HTTP_200_OK)
