"""
Schemas shared by several resources.
"""

from pydantic import BaseModel


class ActiveStatusUpdate(BaseModel):
    is_active: bool


class DeleteResponse(BaseModel):
    message: str
    id: str
