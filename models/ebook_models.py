from pydantic import BaseModel, Field, HttpUrl
from typing import Optional


class EbookCreate(BaseModel):
    title: str = Field(min_length=1, max_length=300)
    author: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    cover_url: Optional[HttpUrl] = None
    content_url: Optional[HttpUrl] = None
    price: float = Field(default=0, ge=0)
    is_free: bool = False
    genre: Optional[str] = None
    pages: Optional[int] = Field(default=None, ge=1)
    isbn: Optional[str] = None


class EbookUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=300)
    author: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    cover_url: Optional[HttpUrl] = None
    content_url: Optional[HttpUrl] = None
    price: Optional[float] = Field(default=None, ge=0)
    is_free: Optional[bool] = None
    genre: Optional[str] = None
    pages: Optional[int] = Field(default=None, ge=1)
    isbn: Optional[str] = None
