from pydantic import BaseModel, Field
from typing import Dict, List, Optional
from datetime import datetime
from enum import Enum


class NotificationType(str, Enum):
    ORDER_PLACED = "order_placed"
    NEW_ORDER = "new_order"
    ORDER_STATUS_UPDATE = "order_status_update"
    BOOK_DEPOSIT = "book_deposit"
    DEPOSIT_APPROVED = "deposit_approved"
    DEPOSIT_REJECTED = "deposit_rejected"
    BOOK_BORROW_REQUEST = "book_borrow_request"
    BOOK_PURCHASE_REQUEST = "book_purchase_request"
    BOOK_EXCHANGE_REQUEST = "book_exchange_request"
    BORROW_APPROVED = "borrow_approved"
    BORROW_REJECTED = "borrow_rejected"
    PURCHASE_APPROVED = "purchase_approved"
    PURCHASE_REJECTED = "purchase_rejected"
    EXCHANGE_APPROVED = "exchange_approved"
    EXCHANGE_REJECTED = "exchange_rejected"
    DEPOSIT_CHANGED_HANDS = "deposit_changed_hands"
    BOOK_RETURNED = "book_returned"
    EXCHANGE_MESSAGE = "exchange_message"
    NEW_TRANSFER = "new_transfer"
    TRANSFER_COMPLETED = "transfer_completed"
    TRANSFER_DECLINED = "transfer_declined"


class Notification(BaseModel):
    id: str
    user_id: str
    type: str
    title: str
    message: Optional[str] = None
    reference_id: Optional[str] = None
    is_read: bool = False
    created_at: datetime


class MarkNotificationsRead(BaseModel):
    # An empty list marks every notification as read
    types: List[str] = Field(default_factory=list)


class UnreadCount(BaseModel):
    total: int
    by_type: Dict[str, int] = Field(default_factory=dict)
