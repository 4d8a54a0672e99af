from pydantic import BaseModel, Field, HttpUrl
from typing import Optional
from datetime import date


class UpdateUserProfile(BaseModel):
    full_name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    phone: Optional[str] = None
    address: Optional[str] = None
    date_of_birth: Optional[date] = None
    avatar_url: Optional[HttpUrl] = None
