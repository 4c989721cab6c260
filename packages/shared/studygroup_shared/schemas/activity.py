"""Activity log schemas (read-only feed for the activity viewer)."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field
from pydantic import UUID4

from .common import ActivityAction


class ActivityLogRead(BaseModel):
    id: UUID4
    user_id: UUID4
    user_name: str
    action: ActivityAction
    action_type: str
    description: Optional[str] = None
    group_id: Optional[UUID4] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
