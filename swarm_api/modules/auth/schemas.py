from pydantic import BaseModel
from typing import Optional, Dict, Any


class CurrentUserResponse(BaseModel):
    id: str
    email: Optional[str] = None
    role: str
    company_id: Optional[str] = None
    company_role: Optional[str] = None
    user_metadata: Dict[str, Any] = {}
