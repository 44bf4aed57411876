"""
Driver profile schemas.
"""

from pydantic import BaseModel
from typing import Optional


class DriverProfileSchema(BaseModel):
    id: int
    display_name: str
    email: Optional[str] = None

    class Config:
        from_attributes = True
