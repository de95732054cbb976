"""Metric sample model."""

from datetime import datetime
from typing import Annotated

from pydantic import AfterValidator, BaseModel, ConfigDict, Field

from photo_alerts.clock import normalize_timestamp, utc_now


class MetricData(BaseModel):
    """A single named numeric sample.

    Immutable once created. Naive timestamps are taken as UTC.

    Attributes:
        name: Metric name, dotted by domain (e.g. "storage.quota_percentage")
        value: Sample value
        timestamp: When the sample was taken
        tags: Free-form string labels (source, endpoint, ...)
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(min_length=1)
    value: float
    timestamp: Annotated[datetime, AfterValidator(normalize_timestamp)] = Field(
        default_factory=utc_now
    )
    tags: dict[str, str] = Field(default_factory=dict)
