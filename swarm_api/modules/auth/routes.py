from fastapi import APIRouter, Depends
from typing import Dict

from swarm_api.core.dependencies import get_current_user_data, get_membership, require_user
from swarm_api.core.membership import MembershipResolver
from swarm_api.core.security import Principal
from swarm_api.modules.auth.schemas import CurrentUserResponse

router = APIRouter(prefix="/auth", tags=["auth"])


@router.get("/me", response_model=CurrentUserResponse)
async def get_current_user(
    principal: Principal = Depends(require_user),
    user_data: Dict = Depends(get_current_user_data),
    membership: MembershipResolver = Depends(get_membership),
):
    """Get current authenticated user, resolved system role and role in the selected company"""
    company_role = None
    if principal.company_id:
        company_role = await membership.role_of(principal.user_id, principal.company_id)
    return CurrentUserResponse(
        id=principal.user_id,
        email=principal.email,
        role=principal.role.value,
        company_id=principal.company_id,
        company_role=company_role,
        user_metadata=user_data.get("user_metadata") or {},
    )
