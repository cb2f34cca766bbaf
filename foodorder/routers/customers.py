# foodorder/routers/customers.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from foodorder.db import get_db
from foodorder.schemas.customers import CustomerIn, CustomerOut
from foodorder.services import customers as svc

router = APIRouter(prefix="/customers", tags=["customers"])


@router.post("", response_model=CustomerOut)
def upsert_customer(body: CustomerIn, db: Session = Depends(get_db)):
    # scanning a table/room QR lands here with table_number or room_number set
    c = svc.upsert(db, body.name, body.phone, body.email,
                   table_number=body.table_number, room_number=body.room_number)
    return CustomerOut.from_customer(c)
