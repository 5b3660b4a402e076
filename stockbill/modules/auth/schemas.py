from pydantic import BaseModel
from typing import Optional
from uuid import UUID


class AuthContext(BaseModel):
    """Identidad del llamador ya resuelta: usuario, tenant y rol en ese tenant."""
    user_id: UUID
    tenant_id: Optional[UUID] = None
    user_role: Optional[str] = None
