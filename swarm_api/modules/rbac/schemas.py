from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime


class FunctionPermissionResponse(BaseModel):
    permission_id: str
    function_name: str
    description: Optional[str] = None

    class Config:
        from_attributes = True


class RoleCreate(BaseModel):
    role_name: str = Field(..., min_length=2, max_length=100)
    description: Optional[str] = None


class RoleResponse(BaseModel):
    role_id: str
    role_name: str
    description: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class RoleWithPermissionsResponse(RoleResponse):
    permissions: List[FunctionPermissionResponse] = []


class RoleAssign(BaseModel):
    user_id: str
    company_id: str
    role_id: str


class RoleAssignResponse(BaseModel):
    user_id: str
    company_id: str
    role: RoleResponse
    created: bool


class RolePermissionsUpdate(BaseModel):
    role_id: str
    permission_ids: List[str]


class UserCompanyRole(BaseModel):
    user_id: str
    company_id: str
    role: RoleWithPermissionsResponse
