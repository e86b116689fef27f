from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from kosh.core.constants import ReferenceType
from kosh.dependencies import get_write_db
from kosh.services.reference_service import generate_reference

router = APIRouter(prefix="/references", tags=["References"])


@router.post("/{reference_type}")
def issue_reference(reference_type: ReferenceType, db: Session = Depends(get_write_db)):
    return {"type": reference_type.value, "reference_no": generate_reference(db, reference_type)}
