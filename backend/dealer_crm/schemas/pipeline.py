"""Opportunity, task and test drive schemas."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from dealer_crm.models.pipeline import OpportunityStatus, TaskPriority, TestDriveStatus
from dealer_crm.schemas.common import ORMResponse


class OpportunityCreate(BaseModel):
    estimated_value: float = Field(..., gt=0)
    probability: Optional[int] = Field(None, ge=0, le=100)
    vehicle_id: Optional[int] = None
    expected_close_date: Optional[datetime] = None
    notes: Optional[str] = None
    status: OpportunityStatus = OpportunityStatus.OPEN


class OpportunityUpdate(BaseModel):
    estimated_value: Optional[float] = Field(None, gt=0)
    probability: Optional[int] = Field(None, ge=0, le=100)
    vehicle_id: Optional[int] = None
    expected_close_date: Optional[datetime] = None
    notes: Optional[str] = None
    status: Optional[OpportunityStatus] = None


class OpportunityResponse(ORMResponse):
    id: int
    lead_id: int
    vehicle_id: Optional[int] = None
    vehicle_title: Optional[str] = None
    estimated_value: float
    probability: int
    expected_close_date: Optional[datetime] = None
    status: OpportunityStatus
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class OpportunityListResponse(BaseModel):
    opportunities: List[OpportunityResponse]
    pipeline_value: float = 0


class TaskCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    assigned_to_id: int
    due_at: datetime
    description: Optional[str] = None
    priority: TaskPriority = TaskPriority.MEDIUM


class TaskUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    assigned_to_id: Optional[int] = None
    due_at: Optional[datetime] = None
    description: Optional[str] = None
    priority: Optional[TaskPriority] = None


class TaskResponse(ORMResponse):
    id: int
    lead_id: int
    lead_name: str
    assigned_to_id: int
    title: str
    description: Optional[str] = None
    due_at: datetime
    priority: TaskPriority
    completed_at: Optional[datetime] = None
    is_completed: bool
    created_at: datetime


class TestDriveCreate(BaseModel):
    __test__ = False

    vehicle_id: int
    scheduled_at: datetime
    duration: Optional[int] = Field(None, gt=0)
    notes: Optional[str] = None


class TestDriveUpdate(BaseModel):
    __test__ = False

    vehicle_id: Optional[int] = None
    scheduled_at: Optional[datetime] = None
    duration: Optional[int] = Field(None, gt=0)
    status: Optional[TestDriveStatus] = None
    notes: Optional[str] = None


class TestDriveResponse(ORMResponse):
    __test__ = False

    id: int
    lead_id: int
    lead_name: str
    vehicle_id: int
    vehicle_title: str
    scheduled_at: datetime
    duration: int
    status: TestDriveStatus
    notes: Optional[str] = None
    created_at: datetime
