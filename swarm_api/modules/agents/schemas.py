from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime
from enum import Enum


class MediaType(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    AUDIO = "audio"
    VIDEO = "video"
    FILE = "file"


class AgentCreate(BaseModel):
    user_id: Optional[str] = None
    company_id: Optional[str] = None
    agent_name: str = Field(..., min_length=3, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)
    route_path: Optional[str] = Field(None, pattern=r"^/api/agents/[a-z0-9-]+$")
    agent_style: Optional[str] = Field(None, max_length=200)
    on_status: Optional[bool] = None
    is_public: bool = False
    avatar_url: Optional[str] = None
    category_id: Optional[str] = None
    template_id: Optional[str] = None
    use_memory: Optional[bool] = None
    use_tool: Optional[bool] = None
    media_input: Optional[List[MediaType]] = None
    media_output: Optional[List[MediaType]] = None
    model_default: Optional[str] = None


class AgentUpdate(BaseModel):
    agent_name: Optional[str] = Field(None, min_length=3, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)
    route_path: Optional[str] = Field(None, pattern=r"^/api/agents/[a-z0-9-]+$")
    agent_style: Optional[str] = Field(None, max_length=200)
    on_status: Optional[bool] = None
    is_public: Optional[bool] = None
    avatar_url: Optional[str] = None
    category_id: Optional[str] = None
    use_memory: Optional[bool] = None
    use_tool: Optional[bool] = None
    media_input: Optional[List[MediaType]] = None
    media_output: Optional[List[MediaType]] = None
    model_default: Optional[str] = None


class AgentResponse(BaseModel):
    agent_id: str
    user_id: Optional[str] = None
    company_id: Optional[str] = None
    agent_name: str
    description: Optional[str] = None
    route_path: Optional[str] = None
    agent_style: Optional[str] = None
    on_status: Optional[bool] = None
    is_public: bool = False
    avatar_url: Optional[str] = None
    category_id: Optional[str] = None
    template_id: Optional[str] = None
    use_memory: Optional[bool] = None
    use_tool: Optional[bool] = None
    media_input: Optional[List[str]] = None
    media_output: Optional[List[str]] = None
    model_default: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class AgentSearchParams(BaseModel):
    query: Optional[str] = None
    company_id: Optional[str] = None
    category_id: Optional[str] = None
    is_public: Optional[bool] = None
    limit: Optional[int] = None
    offset: Optional[int] = None
    sort_by: Optional[str] = None
    sort_order: Optional[str] = None

    @property
    def is_default_search(self) -> bool:
        return not self.query and not self.company_id and not self.category_id and self.is_public is None


class AgentSearchResponse(BaseModel):
    agents: List[AgentResponse]
    total_count: int
    has_more: bool
    is_default_search: bool
    applied_filters: Dict[str, Any]
