"""Pydantic schemas for the coach catalogue."""

from typing import Optional

from pydantic import BaseModel


class CoachResponse(BaseModel):
    id: str
    slug: str
    name: str
    headline: Optional[str] = None
    bio: Optional[str] = None
    level: Optional[str] = None
    training_type: Optional[str] = None

    class Config:
        from_attributes = True
