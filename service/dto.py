"""Data Transfer Objects for the scheduled fetch service layer"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class JobOutcome(BaseModel):
    """Normalized result of one scheduled job"""
    job_key: str
    data_key: str
    success: bool
    data: Any = None
    error: Optional[str] = None
    skipped: bool = False


class ServiceFailure(BaseModel):
    service: str
    error: str


class ServiceSummary(BaseModel):
    """Success/failure tally over one run's job outcomes"""
    successful: List[str] = Field(default_factory=list)
    failed: List[ServiceFailure] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    critical_failures: List[ServiceFailure] = Field(default_factory=list)
    overall_success: bool = True
    success_percentage: int = 0
    total_services: int = 0


class RunSummary(BaseModel):
    """Caller-facing summary attached to a RunResult"""
    success: bool
    success_rate: str
    total_services: int
    successful_services: int
    failed_services: int
    warnings: List[str] = Field(default_factory=list)
    critical_failures: List[ServiceFailure] = Field(default_factory=list)
    failures: List[ServiceFailure] = Field(default_factory=list)


class RunResult(BaseModel):
    """Structured return value of run_scheduled_fetch"""
    success: bool
    status_code: int
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    summary: Optional[RunSummary] = None


class DataRange(BaseModel):
    start_date: str
    end_date: str


class TrackingEntryDTO(BaseModel):
    """Audit record for a calendar-affecting run"""
    id: int
    user_id: str
    country: str
    region: str
    day_name: str
    date_string: str
    data_range: DataRange
    session_id: Optional[str] = None
    status: str = "pending"
    error_message: Optional[str] = None
