from pydantic import BaseModel, EmailStr, Field, HttpUrl
from typing import Optional, List
from datetime import datetime


class CompanyCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    statutory_name: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    email: Optional[EmailStr] = None
    website: Optional[HttpUrl] = None
    logo_url: Optional[str] = None


class CompanyUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    statutory_name: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    email: Optional[EmailStr] = None
    website: Optional[HttpUrl] = None
    logo_url: Optional[str] = None


class CompanyResponse(BaseModel):
    company_id: str
    name: str
    statutory_name: Optional[str] = None
    description: Optional[str] = None
    email: Optional[str] = None
    website: Optional[str] = None
    logo_url: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CompanyListResponse(BaseModel):
    companies: List[CompanyResponse]
    total_count: int
    has_more: bool


class CompanyMemberAdd(BaseModel):
    user_id: str
    role_name: Optional[str] = None  # Defaults to the member role


class CompanyMemberRoleUpdate(BaseModel):
    role_name: str


class CompanyMemberResponse(BaseModel):
    user_id: str
    company_id: str
    role_id: Optional[str] = None
    role_name: Optional[str] = None
    created_at: Optional[datetime] = None


class MemberRoleChangeResponse(BaseModel):
    message: str
    old_role: Optional[str] = None
    new_role: Optional[str] = None
    member: CompanyMemberResponse


class BulkRoleUpdateItem(BaseModel):
    user_id: str
    role_name: str


class BulkRoleUpdateRequest(BaseModel):
    updates: List[BulkRoleUpdateItem] = Field(..., min_length=1)


class BulkRoleUpdateResponse(BaseModel):
    updated: List[CompanyMemberResponse]
    unchanged: List[str]


class UserCompanyRoleResponse(BaseModel):
    company_id: str
    company_name: Optional[str] = None
    role_id: Optional[str] = None
    role_name: Optional[str] = None
    is_admin: bool = False
    joined_at: Optional[datetime] = None
