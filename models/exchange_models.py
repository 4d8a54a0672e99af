from pydantic import BaseModel, Field, HttpUrl, field_validator
from typing import Optional
from datetime import datetime
from enum import Enum

LOAN_PERIOD_DAYS = 14
DEFAULT_EXCHANGE_PRICE = 5.00


class ExchangeBookStatus(str, Enum):
    PENDING_APPROVAL = "pending_approval"
    AVAILABLE = "available"
    REJECTED = "rejected"
    SOLD = "sold"
    ON_LOAN = "on_loan"


class ExchangeTransactionStatus(str, Enum):
    PENDING_APPROVAL = "pending_approval"
    ACTIVE = "active"
    REJECTED = "rejected"
    RETURNED = "returned"


class TransactionType(str, Enum):
    BORROW = "borrow"
    PURCHASE = "purchase"
    EXCHANGE = "exchange"


class BookCondition(str, Enum):
    NEW = "new"
    LIKE_NEW = "like_new"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


class DepositBook(BaseModel):
    title: str = Field(min_length=1, max_length=300)
    author: str = Field(min_length=1, max_length=200)
    isbn: Optional[str] = None
    condition: BookCondition = BookCondition.GOOD
    description: Optional[str] = None
    image_url: Optional[HttpUrl] = None
    price: float = Field(default=DEFAULT_EXCHANGE_PRICE, ge=0)

    @field_validator("title", "author")
    @classmethod
    def not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value


class ExchangeRequest(BaseModel):
    book_id: str
    transaction_type: TransactionType
    offered_book_id: Optional[str] = None


class ExchangeMessageCreate(BaseModel):
    message: str = Field(min_length=1, max_length=2000)

    @field_validator("message")
    @classmethod
    def not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value


class ExchangeBookDetails(BaseModel):
    id: str
    title: str
    author: str
    isbn: Optional[str] = None
    condition: str
    description: Optional[str] = None
    image_url: Optional[str] = None
    status: ExchangeBookStatus
    price: float
    depositor_id: str
    created_at: datetime
    updated_at: Optional[datetime] = None


class ExchangeTransactionDetails(BaseModel):
    id: str
    book_id: str
    user_id: str
    transaction_type: TransactionType
    offered_book_id: Optional[str] = None
    status: ExchangeTransactionStatus
    loan_due_date: Optional[datetime] = None
    returned_at: Optional[datetime] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    is_overdue: bool = False
    book: Optional[ExchangeBookDetails] = None
    offered_book: Optional[ExchangeBookDetails] = None
