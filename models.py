# models.py

import enum

from sqlalchemy import CheckConstraint, Column, DateTime, Integer, Numeric, String, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class Role(str, enum.Enum):
    ADMIN = "admin"
    CASHIER = "cashier"


class ActionKind(str, enum.Enum):
    USER_CREATED = "USER_CREATED"
    STOCK_ADDED = "STOCK_ADDED"
    STOCK_UPDATED = "STOCK_UPDATED"
    STOCK_DELETED = "STOCK_DELETED"
    DRUG_SOLD = "DRUG_SOLD"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)


class Drug(Base):
    __tablename__ = "drugs"
    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_drugs_quantity_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    dosage = Column(String(100), nullable=False)
    quantity = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    brand = Column(String(255), nullable=True)
    location = Column(String(255), nullable=True)


class ActivityLog(Base):
    """
    Append-only audit trail. `username` is a snapshot taken when the
    action happened, not a live reference to the account.
    """
    __tablename__ = "activity_logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=True)  # null for system actions
    username = Column(String(255), nullable=False)
    action_type = Column(String(32), nullable=False)
    details = Column(Text, nullable=False, default="")
    timestamp = Column(DateTime(timezone=True), nullable=False, index=True)
