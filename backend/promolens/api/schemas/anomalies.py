"""
Response models for the anomaly API.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class AnomalyFlagResponse(BaseModel):
    id: str
    code_id: str
    code: Optional[str] = None
    owner_name: Optional[str] = None
    type: str
    severity: str
    message: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    is_resolved: bool
    created_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None


class AnomalyListResponse(BaseModel):
    anomalies: List[AnomalyFlagResponse]
    count: int


class AnomalyRunResponse(BaseModel):
    codes_checked: int
    anomalies_detected: int
    flags_created: int
