# stableramp/domain/settlement/schemas.py
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field


class EventData(BaseModel):
    obj: Dict[str, Any] = Field(default_factory=dict, alias="object")

    class Config:
        populate_by_name = True


class ProcessorEvent(BaseModel):
    """Webhook envelope. Only the fields settlement reads are modelled."""

    id: Optional[str] = None
    type: str
    data: EventData = Field(default_factory=EventData)

    class Config:
        extra = "ignore"


class WebhookAck(BaseModel):
    received: bool = True
    error: Optional[str] = None
