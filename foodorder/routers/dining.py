# foodorder/routers/dining.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List, Optional

from foodorder.config import Settings
from foodorder.db import get_db
from foodorder.deps import get_app_settings, get_codegen, require_auth
from foodorder.schemas.dining import AssignIn, ResourceIn, ResourceOut
from foodorder.services import resources as svc
from foodorder.services.codegen import CodeGenerator

router = APIRouter(prefix="/dining", tags=["dining"])


# ------------------------------------------------------------------
# POST /dining/resources  -> create table/room with its access code
# ------------------------------------------------------------------
@router.post("/resources", response_model=ResourceOut, status_code=201)
def create_resource(
    body: ResourceIn,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    codegen: CodeGenerator = Depends(get_codegen),
    sub: str = Depends(require_auth),
):
    r = svc.create_resource(db, body.kind, body.number, generator=codegen, settings=settings, actor=sub)
    return ResourceOut.from_resource(r)


@router.get("/resources", response_model=List[ResourceOut])
def list_resources(kind: Optional[str] = None, db: Session = Depends(get_db)):
    return [ResourceOut.from_resource(r) for r in svc.list_resources(db, kind)]


@router.post("/resources/{resource_id}/assign", response_model=ResourceOut)
def assign_resource(
    resource_id: str,
    body: AssignIn,
    db: Session = Depends(get_db),
    sub: str = Depends(require_auth),
):
    r = svc.get_resource(db, resource_id)
    r = svc.assign(db, r.kind, r.number, body.customer_id)
    return ResourceOut.from_resource(r)


@router.post("/resources/{resource_id}/release", response_model=ResourceOut)
def release_resource(resource_id: str, db: Session = Depends(get_db), sub: str = Depends(require_auth)):
    """
    502 with `resource_id` in the body means the table is already free but
    some customer records still point at it; calling release again is safe.
    """
    return ResourceOut.from_resource(svc.release(db, resource_id, actor=sub))


@router.post("/resources/{resource_id}/regenerate", response_model=ResourceOut)
def regenerate_code(
    resource_id: str,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    codegen: CodeGenerator = Depends(get_codegen),
    sub: str = Depends(require_auth),
):
    r = svc.regenerate_code(db, resource_id, generator=codegen, settings=settings, actor=sub)
    return ResourceOut.from_resource(r)


@router.delete("/resources/{resource_id}")
def delete_resource(resource_id: str, db: Session = Depends(get_db), sub: str = Depends(require_auth)):
    """Only free resources can be deleted; release an occupied one first."""
    svc.delete_resource(db, resource_id, actor=sub)
    return {"ok": True, "id": resource_id}
