"""Result models reported by the publisher."""
from typing import Any, Dict, List

from pydantic import BaseModel, Field


class PublishResult(BaseModel):
    """Outcome of one publish to OpenTSDB."""

    batch_count: int = Field(0, description="Number of batches attempted")
    success_count: int = Field(0, description="Number of batches accepted by OpenTSDB")
    failure_count: int = Field(0, description="Number of batches that failed")
    meter_count: int = Field(0, description="Number of meters in accepted batches")
    failures: List[Dict[str, Any]] = Field(default_factory=list, description="Details of failed batches")
