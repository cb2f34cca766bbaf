from pydantic import BaseModel
from typing import Optional, Literal, Union
from datetime import datetime

from foodorder.models.core import Resource

ResourceKindLiteral = Literal["table", "room"]

class ResourceIn(BaseModel):
    kind: ResourceKindLiteral
    number: Union[str, int]

class AssignIn(BaseModel):
    customer_id: str

class ResourceOut(BaseModel):
    id: str
    kind: str
    number: str
    access_url: Optional[str] = None
    code_blob: Optional[str] = None
    status: str
    assigned_user_id: Optional[str] = None
    current_order_id: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_resource(cls, r: Resource) -> "ResourceOut":
        return cls(
            id=r.id, kind=r.kind.value, number=r.number, access_url=r.access_url,
            code_blob=r.code_blob, status=r.status.value,
            assigned_user_id=r.assigned_user_id, current_order_id=r.current_order_id,
            created_at=r.created_at,
        )
