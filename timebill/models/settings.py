from pydantic import BaseModel, Field

from timebill.config import (
    DEFAULT_ROUNDING_INCREMENT_MINUTES,
    MAX_ROUNDING_INCREMENT_MINUTES,
    MIN_ROUNDING_INCREMENT_MINUTES,
)

class Settings(BaseModel):
    # invoices round billed time DOWN to this increment
    rounding_increment_minutes: int = Field(
        default=DEFAULT_ROUNDING_INCREMENT_MINUTES,
        ge=MIN_ROUNDING_INCREMENT_MINUTES,
        le=MAX_ROUNDING_INCREMENT_MINUTES,
    )

    class Config:
        extra = "ignore"
        validate_assignment = True
