"""Quota threshold configuration."""

from pydantic import BaseModel, Field, model_validator


class QuotaSettings(BaseModel):
    """Free-tier usage accounting.

    Consumed minutes are weighted by ``minutes_multiplier`` and converted to
    hours. The warning and critical bands sit strictly below the ceiling so
    that in-flight runs can land before the hard limit.
    """

    warning_threshold: float = Field(
        default=118.0,
        gt=0,
        description="Hours-equivalent at which an identity is flagged as low",
    )

    critical_threshold: float = Field(
        default=119.5,
        gt=0,
        description="Hours-equivalent at which an identity is treated as exhausted",
    )

    ceiling_hours: float = Field(
        default=120.0,
        gt=0,
        description="Hard hours-equivalent limit of the free tier",
    )

    minutes_multiplier: float = Field(
        default=2.0,
        gt=0,
        description="Cost weighting applied to consumed minutes (2x for Linux runners)",
    )

    included_minutes: float = Field(
        default=2000.0,
        ge=0,
        description="Minutes included in the plan, reported for display",
    )

    product: str = Field(default="actions", description="Usage product to count")
    unit_type: str = Field(default="Minutes", description="Usage unit to count")

    @model_validator(mode="after")
    def validate_bands(self) -> "QuotaSettings":
        """Ensure warning < critical <= ceiling."""
        if self.warning_threshold >= self.critical_threshold:
            raise ValueError(
                f"warning_threshold ({self.warning_threshold}) must be lower than "
                f"critical_threshold ({self.critical_threshold})"
            )
        if self.critical_threshold > self.ceiling_hours:
            raise ValueError(
                f"critical_threshold ({self.critical_threshold}) must not exceed "
                f"ceiling_hours ({self.ceiling_hours})"
            )
        return self
