from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any, Literal
from datetime import datetime


LogType = Literal["info", "warning", "error", "debug", "conversation"]


class AgentLogCreate(BaseModel):
    message: str = Field(..., min_length=1)
    log_type: LogType = "info"
    session_id: Optional[str] = None
    request_id: Optional[str] = None
    response_time_ms: Optional[int] = Field(None, ge=0)
    tokens_used: Optional[int] = Field(None, ge=0)
    cost: Optional[float] = Field(None, ge=0)
    metadata: Optional[Dict[str, Any]] = None


class AgentSummary(BaseModel):
    agent_id: str
    agent_name: Optional[str] = None
    user_id: Optional[str] = None
    company_id: Optional[str] = None
    is_public: bool = False


class AgentLogResponse(BaseModel):
    agent_log_id: str
    agent_id: str
    user_id: Optional[str] = None
    message: str
    log_type: str = "info"
    session_id: Optional[str] = None
    request_id: Optional[str] = None
    response_time_ms: Optional[int] = None
    tokens_used: Optional[int] = None
    cost: Optional[float] = None
    metadata: Optional[Dict[str, Any]] = None
    agent: Optional[AgentSummary] = Field(None, validation_alias="agents")
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
        populate_by_name = True


class AgentLogFilters(BaseModel):
    agent_id: Optional[str] = None
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    limit: Optional[int] = None
    offset: Optional[int] = None
    sort_order: Optional[str] = None


class AgentLogListResponse(BaseModel):
    logs: List[AgentLogResponse]
    total_count: int
    has_more: bool
