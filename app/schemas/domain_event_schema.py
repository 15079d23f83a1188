from pydantic import BaseModel, Field
from typing import Any, Dict, Optional
from datetime import datetime


class DomainEvent(BaseModel):
    """Fact emitted to the notification sink after a committed change"""

    name: str
    occurred_at: datetime
    booking_id: Optional[int] = None
    booking_reference: Optional[str] = None
    payment_id: Optional[int] = None
    recipient: Optional[str] = None
    payload: Dict[str, Any] = Field(default_factory=dict)
