"""Service-level constants shared across modules."""
from __future__ import annotations

from enum import Enum


class ProcessingOutcome(str, Enum):
    PROCESSED = "PROCESSED"
    ROUTED_TO_RETRY = "ROUTED_TO_RETRY"
    RETRY_SCHEDULED = "RETRY_SCHEDULED"
    ESCALATED = "ESCALATED"


class ConsumerGroup:
    PRIMARY = "primary"
    RETRY = "retry"
    DEAD_LETTER = "dead-letter"
    AGGREGATION = "aggregation"


MAX_RETRIES_REACHED = "max retries reached"
INVALID_PRICE = "invalid price: must be non-negative"

PRODUCT_CATALOG: tuple[str, ...] = (
    "Laptop",
    "Mouse",
    "Keyboard",
    "Monitor",
    "Headphones",
    "Webcam",
    "Tablet",
    "Smartphone",
    "Charger",
    "USB Cable",
)

MIN_SYNTHETIC_PRICE = 10.0
MAX_SYNTHETIC_PRICE = 1000.0
MAX_SYNTHETIC_BATCH = 1000
