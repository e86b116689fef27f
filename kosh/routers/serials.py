from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from kosh.dependencies import get_db, get_write_db
from kosh.schemas.product import SerialRead, SerialStatusUpdate, SerialTrace
from kosh.services import inventory_service

router = APIRouter(prefix="/serials", tags=["Inventory"])


@router.patch("/{serial_id}/status", response_model=SerialRead)
def update_serial_status(serial_id: int, payload: SerialStatusUpdate, db: Session = Depends(get_write_db)):
    serial = inventory_service.get_serial(db, serial_id)
    return SerialRead.model_validate(inventory_service.transition_serial(db, serial, payload.status))


@router.get("/trace/{serial_number}", response_model=List[SerialTrace])
def trace_serial(serial_number: str, product_id: Optional[int] = None, db: Session = Depends(get_db)):
    return inventory_service.trace_serial(db, serial_number, product_id)
