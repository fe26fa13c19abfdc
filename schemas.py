# schemas.py
from datetime import datetime
from decimal import Decimal
from typing import Any, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from errors import InvalidDrugData, describe_validation_errors
from models import ActionKind, Role


# ---------- Auth ----------

class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1, examples=["admin"])
    password: str = Field(..., min_length=1)


class LoginResponse(BaseModel):
    token: str
    role: Role
    username: str


class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=255, examples=["bob"])
    password: str = Field(..., min_length=1)
    # Parsed into Role by the authenticator so a bad value is an InvalidRole
    role: str = Field(..., examples=["cashier"])

    @field_validator("username")
    @classmethod
    def _trim(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Username must not be blank")
        return v


class Account(BaseModel):
    id: int
    username: str
    role: Role

    model_config = ConfigDict(from_attributes=True)


class RegisterResponse(BaseModel):
    message: str
    user: Account


# ---------- Drugs ----------

class DrugIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=255, examples=["Paracetamol"])
    dosage: str = Field(..., min_length=1, max_length=100, examples=["500mg"])
    quantity: int = Field(..., ge=0, examples=[20])
    price: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2, examples=["5.00"])
    brand: Optional[str] = Field(None, max_length=255)
    location: Optional[str] = Field(None, max_length=255)

    @field_validator("name", "dosage")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Field must not be blank")
        return v

    @field_validator("brand", "location")
    @classmethod
    def _blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip() or None


class Drug(DrugIn):
    id: int

    model_config = ConfigDict(from_attributes=True)


class SellRequest(BaseModel):
    # Left unconverted: the ledger accepts only real positive ints, so JSON
    # true, "3" or 2.0 must reach it as-is
    quantity_sold: Any = Field(..., alias="quantitySold", examples=[2])

    model_config = ConfigDict(populate_by_name=True)


def parse_drug_fields(fields: Union[DrugIn, Mapping[str, Any]]) -> DrugIn:
    if isinstance(fields, DrugIn):
        return fields
    try:
        return DrugIn.model_validate(dict(fields))
    except ValidationError as exc:
        raise InvalidDrugData(describe_validation_errors(exc.errors())) from exc


# ---------- Activity ----------

class ActivityLogEntry(BaseModel):
    id: int
    user_id: Optional[int]
    username: str
    action_type: ActionKind
    details: str
    timestamp: datetime

    model_config = ConfigDict(from_attributes=True)


class HealthStatus(BaseModel):
    status: str
    timestamp: datetime
