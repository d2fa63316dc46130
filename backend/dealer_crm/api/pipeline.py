"""Opportunities, tasks and test drives."""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from dealer_crm.database import get_db
from dealer_crm.models.pipeline import OpportunityStatus, TestDriveStatus
from dealer_crm.models.user import User
from dealer_crm.schemas.pipeline import (
    OpportunityCreate,
    OpportunityListResponse,
    OpportunityResponse,
    OpportunityUpdate,
    TaskCreate,
    TaskResponse,
    TaskUpdate,
    TestDriveCreate,
    TestDriveResponse,
    TestDriveUpdate,
)
from dealer_crm.services.opportunity_service import OpportunityService
from dealer_crm.services.task_service import TaskService
from dealer_crm.services.test_drive_service import TestDriveService
from dealer_crm.utils.security import get_current_user

router = APIRouter()


# ----------------------------------------------------------------------
# Opportunities
# ----------------------------------------------------------------------


@router.get("/opportunities", response_model=OpportunityListResponse, tags=["Opportunities"])
async def list_dealer_opportunities(
    status: Optional[OpportunityStatus] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> OpportunityListResponse:
    opportunities, pipeline_value = await OpportunityService(db).list_for_dealer(
        current_user.dealer_id, status
    )
    return OpportunityListResponse(
        opportunities=[OpportunityResponse.model_validate(o) for o in opportunities],
        pipeline_value=pipeline_value,
    )


@router.get(
    "/leads/{lead_id}/opportunities",
    response_model=OpportunityListResponse,
    tags=["Opportunities"],
)
async def list_lead_opportunities(
    lead_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> OpportunityListResponse:
    opportunities = await OpportunityService(db).list_for_lead(current_user.dealer_id, lead_id)
    return OpportunityListResponse(
        opportunities=[OpportunityResponse.model_validate(o) for o in opportunities],
    )


@router.post(
    "/leads/{lead_id}/opportunities",
    response_model=OpportunityResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Opportunities"],
)
async def create_opportunity(
    lead_id: int,
    request: OpportunityCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> OpportunityResponse:
    opportunity = await OpportunityService(db).create(
        current_user, lead_id, **request.model_dump()
    )
    return OpportunityResponse.model_validate(opportunity)


@router.patch(
    "/leads/{lead_id}/opportunities/{opportunity_id}",
    response_model=OpportunityResponse,
    tags=["Opportunities"],
)
async def update_opportunity(
    lead_id: int,
    opportunity_id: int,
    request: OpportunityUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> OpportunityResponse:
    opportunity = await OpportunityService(db).update(
        current_user, lead_id, opportunity_id, request.model_dump(exclude_unset=True)
    )
    return OpportunityResponse.model_validate(opportunity)


@router.delete(
    "/leads/{lead_id}/opportunities/{opportunity_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["Opportunities"],
)
async def delete_opportunity(
    lead_id: int,
    opportunity_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> None:
    await OpportunityService(db).delete(current_user.dealer_id, lead_id, opportunity_id)


# ----------------------------------------------------------------------
# Tasks
# ----------------------------------------------------------------------


@router.get("/tasks", response_model=List[TaskResponse], tags=["Tasks"])
async def list_dealer_tasks(
    assigned_to: str = Query("me"),
    include_completed: bool = False,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> List[TaskResponse]:
    tasks = await TaskService(db).list_for_dealer(
        current_user.dealer_id,
        current_user.id,
        assigned_to=assigned_to,
        include_completed=include_completed,
    )
    return [TaskResponse.model_validate(t) for t in tasks]


@router.get("/leads/{lead_id}/tasks", response_model=List[TaskResponse], tags=["Tasks"])
async def list_lead_tasks(
    lead_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> List[TaskResponse]:
    tasks = await TaskService(db).list_for_lead(current_user.dealer_id, lead_id)
    return [TaskResponse.model_validate(t) for t in tasks]


@router.post(
    "/leads/{lead_id}/tasks",
    response_model=TaskResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Tasks"],
)
async def create_task(
    lead_id: int,
    request: TaskCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> TaskResponse:
    task = await TaskService(db).create(current_user, lead_id, **request.model_dump())
    return TaskResponse.model_validate(task)


@router.patch("/leads/{lead_id}/tasks/{task_id}", response_model=TaskResponse, tags=["Tasks"])
async def update_task(
    lead_id: int,
    task_id: int,
    request: TaskUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> TaskResponse:
    task = await TaskService(db).update(
        current_user, lead_id, task_id, request.model_dump(exclude_unset=True)
    )
    return TaskResponse.model_validate(task)


@router.post(
    "/leads/{lead_id}/tasks/{task_id}/complete",
    response_model=TaskResponse,
    tags=["Tasks"],
)
async def complete_task(
    lead_id: int,
    task_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> TaskResponse:
    task = await TaskService(db).complete(current_user, lead_id, task_id)
    return TaskResponse.model_validate(task)


@router.delete(
    "/leads/{lead_id}/tasks/{task_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["Tasks"],
)
async def delete_task(
    lead_id: int,
    task_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> None:
    await TaskService(db).delete(current_user.dealer_id, lead_id, task_id)


# ----------------------------------------------------------------------
# Test drives
# ----------------------------------------------------------------------


@router.get("/test-drives", response_model=List[TestDriveResponse], tags=["Test Drives"])
async def list_dealer_test_drives(
    status: Optional[TestDriveStatus] = None,
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> List[TestDriveResponse]:
    test_drives = await TestDriveService(db).list_for_dealer(
        current_user.dealer_id, status=status, date_from=date_from, date_to=date_to
    )
    return [TestDriveResponse.model_validate(t) for t in test_drives]


@router.get(
    "/leads/{lead_id}/test-drives",
    response_model=List[TestDriveResponse],
    tags=["Test Drives"],
)
async def list_lead_test_drives(
    lead_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> List[TestDriveResponse]:
    test_drives = await TestDriveService(db).list_for_lead(current_user.dealer_id, lead_id)
    return [TestDriveResponse.model_validate(t) for t in test_drives]


@router.post(
    "/leads/{lead_id}/test-drives",
    response_model=TestDriveResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Test Drives"],
)
async def create_test_drive(
    lead_id: int,
    request: TestDriveCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> TestDriveResponse:
    test_drive = await TestDriveService(db).create(current_user, lead_id, **request.model_dump())
    return TestDriveResponse.model_validate(test_drive)


@router.patch(
    "/leads/{lead_id}/test-drives/{test_drive_id}",
    response_model=TestDriveResponse,
    tags=["Test Drives"],
)
async def update_test_drive(
    lead_id: int,
    test_drive_id: int,
    request: TestDriveUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> TestDriveResponse:
    test_drive = await TestDriveService(db).update(
        current_user, lead_id, test_drive_id, request.model_dump(exclude_unset=True)
    )
    return TestDriveResponse.model_validate(test_drive)


@router.delete(
    "/leads/{lead_id}/test-drives/{test_drive_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["Test Drives"],
)
async def delete_test_drive(
    lead_id: int,
    test_drive_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> None:
    await TestDriveService(db).delete(current_user.dealer_id, lead_id, test_drive_id)
