"""
Canvas 프로젝트 API 엔드포인트
"""

from typing import Dict, Any
from fastapi import APIRouter, Depends, Query, Request, status

from canvas_app.api.deps import get_current_user, get_project_service
from canvas_app.core.responses import create_success_response
from canvas_app.models.canvas_models import CollaboratorAdd, ProjectCreate, ProjectUpdate
from canvas_app.services.project_service import ProjectService

router = APIRouter()


@router.post("/projects", status_code=status.HTTP_201_CREATED)
async def create_project(
    request: Request,
    body: ProjectCreate,
    current_user: Dict[str, Any] = Depends(get_current_user),
    service: ProjectService = Depends(get_project_service)
) -> Dict[str, Any]:
    """새 Canvas 프로젝트 생성 (요청자가 owner)"""
    project = await service.create_project(current_user["id"], body)
    return create_success_response(
        message="프로젝트가 생성되었습니다",
        data=project.model_dump(by_alias=True, mode="json"),
        request_id=getattr(request.state, "request_id", None)
    )


@router.get("/projects")
async def list_projects(
    request: Request,
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    current_user: Dict[str, Any] = Depends(get_current_user),
    service: ProjectService = Depends(get_project_service)
) -> Dict[str, Any]:
    """참여 중인 프로젝트 목록"""
    projects = await service.list_projects(current_user["id"], skip=skip, limit=limit)
    return create_success_response(
        message="프로젝트 목록 조회 완료",
        data={
            "projects": [project.model_dump(by_alias=True, mode="json") for project in projects],
            "skip": skip,
            "limit": limit
        },
        request_id=getattr(request.state, "request_id", None)
    )


@router.get("/projects/{project_id}")
async def get_project(
    request: Request,
    project_id: str,
    current_user: Dict[str, Any] = Depends(get_current_user),
    service: ProjectService = Depends(get_project_service)
) -> Dict[str, Any]:
    project = await service.get_project(project_id, current_user["id"])
    return create_success_response(
        message="프로젝트 조회 완료",
        data=project.model_dump(by_alias=True, mode="json"),
        request_id=getattr(request.state, "request_id", None)
    )


@router.patch("/projects/{project_id}")
async def update_project(
    request: Request,
    project_id: str,
    body: ProjectUpdate,
    current_user: Dict[str, Any] = Depends(get_current_user),
    service: ProjectService = Depends(get_project_service)
) -> Dict[str, Any]:
    project = await service.update_project(project_id, current_user["id"], body)
    return create_success_response(
        message="프로젝트가 수정되었습니다",
        data=project.model_dump(by_alias=True, mode="json"),
        request_id=getattr(request.state, "request_id", None)
    )


@router.delete("/projects/{project_id}")
async def delete_project(
    request: Request,
    project_id: str,
    current_user: Dict[str, Any] = Depends(get_current_user),
    service: ProjectService = Depends(get_project_service)
) -> Dict[str, Any]:
    """프로젝트 삭제 (owner 전용)"""
    await service.delete_project(project_id, current_user["id"])
    return create_success_response(
        message="프로젝트가 삭제되었습니다",
        data={"projectId": project_id},
        request_id=getattr(request.state, "request_id", None)
    )


@router.post("/projects/{project_id}/collaborators", status_code=status.HTTP_201_CREATED)
async def add_collaborator(
    request: Request,
    project_id: str,
    body: CollaboratorAdd,
    current_user: Dict[str, Any] = Depends(get_current_user),
    service: ProjectService = Depends(get_project_service)
) -> Dict[str, Any]:
    """협업자 추가 또는 역할 변경 (owner 전용)"""
    collaborator = await service.add_collaborator(project_id, current_user["id"], body)
    return create_success_response(
        message="협업자가 추가되었습니다",
        data=collaborator.model_dump(by_alias=True, mode="json"),
        request_id=getattr(request.state, "request_id", None)
    )
