from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional
from datetime import datetime
from enum import Enum


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


def check_discount_values(discount_type, discount_value, start_date=None, end_date=None):
    if discount_type == DiscountType.PERCENTAGE and discount_value > 100:
        raise ValueError("Percentage discounts cannot exceed 100")
    if start_date and end_date and end_date < start_date:
        raise ValueError("end_date must be after start_date")


class DiscountCreate(BaseModel):
    code: str = Field(min_length=2, max_length=50)
    name: str = Field(min_length=1, max_length=200)
    discount_type: DiscountType = DiscountType.PERCENTAGE
    discount_value: float = Field(gt=0)
    min_order_amount: float = Field(default=0, ge=0)
    max_uses: Optional[int] = Field(default=None, ge=1)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    is_active: bool = True

    @field_validator("code")
    @classmethod
    def upper_code(cls, value: str) -> str:
        return value.strip().upper()

    @model_validator(mode="after")
    def check_values(self):
        check_discount_values(self.discount_type, self.discount_value, self.start_date, self.end_date)
        return self


class DiscountUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    discount_type: Optional[DiscountType] = None
    discount_value: Optional[float] = Field(default=None, gt=0)
    min_order_amount: Optional[float] = Field(default=None, ge=0)
    max_uses: Optional[int] = Field(default=None, ge=1)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    is_active: Optional[bool] = None


class DiscountValidation(BaseModel):
    code: str
    subtotal: float = Field(ge=0)
