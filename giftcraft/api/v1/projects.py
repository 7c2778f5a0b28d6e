from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Response, status
from pydantic import ValidationError as PydanticValidationError

from giftcraft.api.deps import get_store
from giftcraft.core.exceptions import ProjectNotFoundException
from giftcraft.core.logging import get_logger
from giftcraft.schemas.project import (
    CreateProjectRequest,
    Project,
    ProjectListResponse,
    ProjectPatchRequest,
    SetCurrentProjectRequest,
)
from giftcraft.services.project_store import ProjectStore, Replace, Transform

logger = get_logger(__name__)
router = APIRouter(prefix="/projects", tags=["Project"])


def _require_project(store: ProjectStore, project_id: str) -> Project:
    project = store.get_project(project_id)
    if project is None:
        raise ProjectNotFoundException(f"Project {project_id} not found")
    return project


def _require_current(store: ProjectStore) -> Project:
    if store.current_project is None:
        raise ProjectNotFoundException("No current project")
    return store.current_project


@router.get(
    "",
    response_model=ProjectListResponse,
    response_model_by_alias=True,
    summary="获取项目列表",
    description="返回全部项目（导出格式）以及当前项目 ID 与修订号",
)
async def list_projects(store: ProjectStore = Depends(get_store)):
    state = store.state
    return ProjectListResponse(
        total=len(state.projects),
        current_project_id=state.current_id,
        revision=state.revision,
        items=[p.to_export_dict() for p in state.projects],
    )


@router.post("", status_code=status.HTTP_201_CREATED, summary="新建项目并设为当前项目")
async def create_project(payload: CreateProjectRequest, store: ProjectStore = Depends(get_store)):
    project = store.create_project(payload.template_id, payload.name)
    return project.to_export_dict()


@router.post("/import", status_code=status.HTTP_201_CREATED, summary="导入项目 JSON")
async def import_project(payload: Any = Body(...), store: ProjectStore = Depends(get_store)):
    result = await store.import_project(payload)
    if not result.success:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=result.error)
    return result.project.to_export_dict()


@router.get("/current", summary="获取当前项目")
async def get_current_project(store: ProjectStore = Depends(get_store)):
    return _require_current(store).to_export_dict()


@router.put("/current", summary="切换当前项目（projectId 为 null 时清除）")
async def set_current_project(payload: SetCurrentProjectRequest, store: ProjectStore = Depends(get_store)):
    if payload.project_id is None:
        store.set_current_project(None)
        return {"currentProjectId": None, "revision": store.revision}

    project = store.set_current_project(_require_project(store, payload.project_id))
    return {"currentProjectId": project.id, "revision": store.revision}


@router.patch("/current", summary="部分更新当前项目")
async def patch_current_project(
    payload: ProjectPatchRequest,
    save_immediately: bool = Query(False, description="更新后立即保存"),
    store: ProjectStore = Depends(get_store),
):
    changes = payload.model_dump(exclude_none=True)
    updated = store.update_project(Transform(lambda p: p.model_copy(update=changes)), save_immediately)
    if updated is None:
        raise ProjectNotFoundException("No current project")
    return updated.to_export_dict()


@router.post("/current/save", summary="立即保存当前项目")
async def save_current_project(store: ProjectStore = Depends(get_store)):
    saved = store.save_current_project()
    if saved is None:
        raise ProjectNotFoundException("No current project")
    return saved.to_export_dict()


@router.get("/{project_id}", summary="获取单个项目")
async def get_project(project_id: str, store: ProjectStore = Depends(get_store)):
    return _require_project(store, project_id).to_export_dict()


@router.put("/{project_id}", summary="整体替换项目")
async def replace_project(
    project_id: str,
    payload: Dict[str, Any] = Body(...),
    save_immediately: bool = Query(False, description="更新后立即保存"),
    store: ProjectStore = Depends(get_store),
):
    _require_project(store, project_id)
    try:
        project = Project.model_validate(payload)
    except PydanticValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=[{"loc": err["loc"], "msg": err["msg"]} for err in e.errors()],
        )
    if project.id != project_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Project ID cannot be changed")

    updated = store.update_project(Replace(project), save_immediately)
    return updated.to_export_dict()


@router.delete("/{project_id}", status_code=status.HTTP_204_NO_CONTENT, summary="删除项目及其媒体")
async def delete_project(project_id: str, store: ProjectStore = Depends(get_store)):
    await store.delete_project(project_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{project_id}/export", summary="导出项目 JSON")
async def export_project(project_id: str, store: ProjectStore = Depends(get_store)):
    project = _require_project(store, project_id)
    return Response(
        content=store.export_project(project),
        media_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="{project.id}.json"'},
    )
