from datetime import date, datetime, time, timedelta
from typing import List
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator


class RetryPolicy(BaseModel):
    timezone_name: str = Field(
        default="Asia/Kolkata",
        description="IANA timezone the business day and cut-off are expressed in.",
        examples=["Asia/Kolkata"],
    )
    business_day_start: time = Field(
        default=time(9, 30),
        description="Local time of the first attempt of a business day.",
        examples=["09:30"],
    )
    cutoff: time = Field(
        default=time(15, 0),
        description="Local daily cut-off; no attempt starts at or after it.",
        examples=["15:00"],
    )
    max_attempts: int = Field(
        default=3, ge=1, description="Attempts allowed per due date.", examples=[3]
    )
    retry_offsets_minutes: List[int] = Field(
        default_factory=lambda: [120, 60],
        description="Minutes before cut-off of each retry, in attempt order.",
        examples=[[120, 60]],
    )

    @field_validator("timezone_name")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"unknown timezone: {value}") from exc
        return value

    @field_validator("retry_offsets_minutes")
    @classmethod
    def _decreasing_positive_offsets(cls, value: List[int]) -> List[int]:
        if any(offset <= 0 for offset in value):
            raise ValueError("retry offsets must be positive minutes before cut-off")
        if any(later >= earlier for earlier, later in zip(value, value[1:])):
            raise ValueError("retry offsets must be strictly decreasing")
        return value

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone_name)

    def day_start_at(self, business_date: date) -> datetime:
        return datetime.combine(business_date, self.business_day_start, tzinfo=self.tz)

    def cutoff_at(self, business_date: date) -> datetime:
        return datetime.combine(business_date, self.cutoff, tzinfo=self.tz)

    def attempt_times(self, business_date: date) -> List[datetime]:
        """
        Planned attempt slots for one business day, earliest first.

        The first slot is the business-day start; each retry sits a fixed offset before the
        cut-off. Slots that do not fall strictly between the previous slot and the cut-off
        are dropped, so the list may be shorter than ``max_attempts``.
        """
        cutoff_at = self.cutoff_at(business_date)
        slots: List[datetime] = []
        candidates = [self.day_start_at(business_date)] + [
            cutoff_at - timedelta(minutes=offset)
            for offset in self.retry_offsets_minutes[: self.max_attempts - 1]
        ]
        for candidate in candidates:
            if candidate >= cutoff_at:
                continue
            if slots and candidate <= slots[-1]:
                continue
            slots.append(candidate)
        return slots
