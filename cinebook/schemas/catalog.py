"""
Pydantic schemas for catalog reference data.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator


class MovieCreate(BaseModel):
    """Schema for adding a movie."""
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    genre: Optional[str] = Field(None, max_length=100)
    rating: Optional[str] = Field(None, max_length=20)
    duration_minutes: int = Field(..., gt=0, le=600)


class CinemaCreate(BaseModel):
    """Schema for adding a cinema hall."""
    name: str = Field(..., min_length=1, max_length=255)
    location: str = Field("", max_length=255)
    total_rows: int = Field(..., ge=1, le=52)
    seats_per_row: int = Field(..., ge=1, le=60)
    has_deluxe_seats: bool = False
    deluxe_rows: Optional[int] = Field(None, ge=0, description="Trailing rows sold as deluxe")

    @model_validator(mode="after")
    def check_deluxe_rows(self) -> "CinemaCreate":
        if self.deluxe_rows is not None and self.deluxe_rows > self.total_rows:
            raise ValueError("deluxe_rows cannot exceed total_rows")
        if not self.has_deluxe_seats and self.deluxe_rows:
            raise ValueError("deluxe_rows requires has_deluxe_seats")
        return self


class ScreeningCreate(BaseModel):
    """Schema for scheduling a screening."""
    movie_id: UUID
    cinema_id: UUID
    start_time: datetime
    standard_price: Decimal = Field(..., ge=0, decimal_places=2)
    deluxe_price: Decimal = Field(..., ge=0, decimal_places=2)


class ScreeningUpdate(BaseModel):
    """
    Partial update of a screening; unset fields are left alone.

    The hall cannot change because the seats were generated from its layout.
    """
    movie_id: Optional[UUID] = None
    start_time: Optional[datetime] = None
    standard_price: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    deluxe_price: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    is_active: Optional[bool] = None


class ConcessionCreate(BaseModel):
    """Schema for adding a concession item."""
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    price: Decimal = Field(..., ge=0, decimal_places=2)
    category: str = Field(..., min_length=1, max_length=100)
    is_available: bool = True


class MovieSnapshot(BaseModel):
    """Read-only view of a movie."""
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: UUID
    title: str
    genre: Optional[str] = None
    rating: Optional[str] = None
    duration_minutes: int
    is_active: bool


class CinemaSnapshot(BaseModel):
    """Read-only view of a cinema and its layout."""
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: UUID
    name: str
    location: str
    total_rows: int
    seats_per_row: int
    has_deluxe_seats: bool
    deluxe_rows: int


class ScreeningSnapshot(BaseModel):
    """Read-only view of a screening used for pricing."""
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: UUID
    movie_id: UUID
    cinema_id: UUID
    start_time: datetime
    standard_price: Decimal
    deluxe_price: Decimal
    is_active: bool


class ConcessionSnapshot(BaseModel):
    """Read-only view of a concession used for pricing."""
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: UUID
    name: str
    price: Decimal
    category: str
    is_available: bool
