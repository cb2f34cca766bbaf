from pydantic import BaseModel
from typing import Optional, Union

from foodorder.models.core import Customer

class CustomerIn(BaseModel):
    name: str
    phone: str
    email: Optional[str] = None
    table_number: Optional[Union[str, int]] = None
    room_number: Optional[Union[str, int]] = None

class CustomerOut(BaseModel):
    id: str
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    table_number: Optional[str] = None
    room_number: Optional[str] = None

    @classmethod
    def from_customer(cls, c: Customer) -> "CustomerOut":
        return cls(id=c.id, name=c.name, phone=c.phone, email=c.email,
                   table_number=c.table_number, room_number=c.room_number)
