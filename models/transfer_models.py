import re

from pydantic import BaseModel, Field, HttpUrl, field_validator
from typing import Optional
from datetime import datetime
from enum import Enum

LEBANESE_PHONE_RE = re.compile(r"^(\+961|961)?[0-9]{7,8}$")


class TransferStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    DECLINED = "declined"


class MoneyTransferRequest(BaseModel):
    sender_full_name: str = Field(min_length=2, max_length=100)
    sender_id_number: str = Field(min_length=5, max_length=50)
    sender_id_picture_url: HttpUrl
    sender_phone: str
    amount: float = Field(ge=1)
    receiver_full_name: str = Field(min_length=2, max_length=100)

    @field_validator("sender_phone")
    @classmethod
    def lebanese_phone(cls, value: str) -> str:
        cleaned = re.sub(r"[\s-]", "", value)
        if not LEBANESE_PHONE_RE.match(cleaned):
            raise ValueError("Must be a valid Lebanese phone number")
        return cleaned

    @field_validator("sender_full_name", "receiver_full_name", "sender_id_number")
    @classmethod
    def strip_text(cls, value: str) -> str:
        return value.strip()


class TransferStatusUpdate(BaseModel):
    status: TransferStatus


class MoneyTransfer(BaseModel):
    id: str
    user_id: str
    sender_full_name: str
    sender_id_number: str
    sender_id_picture_url: Optional[str] = None
    sender_phone: str
    amount: float
    receiver_full_name: str
    transfer_type: str = "local"
    status: TransferStatus
    created_at: datetime
    updated_at: Optional[datetime] = None
