from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime


class OrganizationCreate(BaseModel):
    organization_name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    user_id: Optional[str] = None
    company_id: Optional[str] = None
    template_id: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    is_public: bool = False


class OrganizationUpdate(BaseModel):
    organization_name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    template_id: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    is_public: Optional[bool] = None


class OrganizationResponse(BaseModel):
    organization_id: str
    organization_name: str
    description: Optional[str] = None
    user_id: Optional[str] = None
    company_id: Optional[str] = None
    template_id: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    is_public: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class OrganizationListResponse(BaseModel):
    organizations: List[OrganizationResponse]
    total_count: int
    has_more: bool
