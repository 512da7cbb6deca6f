import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict


class EntityHistoryRead(BaseModel):
    """Represent a previous version of a cached entity."""

    id: int
    timestamp: datetime.datetime
    entity_type: str
    entity_id: str
    version: int
    snapshot: Dict[str, Any]
    change_source: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)
