"""Power samples reported by smart-plug sensors."""

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import SensorParseFailure


class PowerSample(BaseModel):
    """A single power-draw reading, immutable once recorded."""

    model_config = ConfigDict(frozen=True)

    power: float = Field(
        ge=0, allow_inf_nan=False, description="Power draw in watts"
    )
    observed_at: int = Field(
        default=0,
        description="Nanosecond timestamp at which the reading arrived",
    )


class PowerReport(BaseModel):
    """Decoded sensor payload.

    Plugs publish a JSON object with many fields (voltage, current,
    linkquality, ...). Only ``power`` is required; everything else is
    retained but ignored.
    """

    model_config = ConfigDict(extra="allow", frozen=True)

    power: float = Field(ge=0, allow_inf_nan=False)


def parse_payload(payload: bytes | str, observed_at: int = 0) -> PowerSample:
    """Turn a raw sensor payload into a PowerSample.

    Args:
        payload: JSON document as published by the plug
        observed_at: Nanosecond timestamp to stamp on the sample

    Returns:
        The decoded sample

    Raises:
        SensorParseFailure: If the payload is not a JSON object with a
            finite, non-negative numeric ``power`` field

    """
    try:
        report = PowerReport.model_validate_json(payload)
    except ValidationError as e:
        raise SensorParseFailure(
            f"Invalid power payload {payload!r}: {e.error_count()} error(s)"
        ) from e
    return PowerSample(power=report.power, observed_at=observed_at)
