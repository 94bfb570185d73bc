from typing import Optional
from fastapi import HTTPException, status
from sqlalchemy.orm import Session


def validate_table_number_uniqueness(db: Session, model, table_number: str, restaurant_id: int):
    """Validate that the table number is unique within the restaurant"""
    existing = db.query(model).filter(
        model.table_number == table_number,
        model.restaurant_id == restaurant_id
    ).first()

    if existing:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"{model.__name__} with this number already exists"
        )


def mask_phone(phone: Optional[str]) -> str:
    """Keep only the last four digits of a phone number for logging."""
    if not phone:
        return "-"
    digits = "".join(ch for ch in phone if ch.isdigit())
    return f"***{digits[-4:]}" if len(digits) > 4 else "***"
