from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any

from homeassistant.core import Event, HomeAssistant, callback
from homeassistant.helpers.event import async_track_state_change_event, async_track_time_change
from homeassistant.util import dt as dt_util

from .const import (
    DEFAULT_HEATING_LIMIT_TEMP,
    HEATING_PERIOD_RESET_HOUR,
    HEATING_PERIOD_RESET_MINUTE,
    HEATING_SEASON_MONTHS,
    KEY_HEATING_PERIOD,
)
from .state_helpers import safe_float
from .storage import LearnedStore

_LOGGER = logging.getLogger(__name__)


@dataclass
class HeatingPeriodState:
    temperature_sum: float = 0.0
    sample_count: int = 0
    daily_average: float | None = None
    heating_period_active: bool = False
    last_reset: str = "never"

    @classmethod
    def from_dict(cls, d: dict[str, Any] | None) -> "HeatingPeriodState":
        if not isinstance(d, dict):
            return cls()
        avg = d.get("daily_average")
        return cls(
            temperature_sum=float(d.get("temperature_sum", 0.0)),
            sample_count=int(d.get("sample_count", 0)),
            daily_average=float(avg) if avg is not None else None,
            heating_period_active=bool(d.get("heating_period_active", False)),
            last_reset=str(d.get("last_reset", "never")),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def determine_heating_period(
    daily_average: float, month: int, limit_temp: float = DEFAULT_HEATING_LIMIT_TEMP
) -> tuple[bool, str]:
    """Heating is on in October-May when the daily mean is at or below the limit."""
    in_season = month in HEATING_SEASON_MONTHS
    below_limit = daily_average <= limit_temp
    if not in_season:
        return False, "outside the heating season (October-May)"
    if not below_limit:
        return False, f"daily average {daily_average:.2f}°C is above the heating limit {limit_temp}°C"
    return True, f"daily average {daily_average:.2f}°C is below the heating limit {limit_temp}°C"


class HeatingPeriodTracker:
    """Accumulates outdoor temperatures and decides the heating period once a day."""

    def __init__(
        self,
        hass: HomeAssistant,
        store: LearnedStore,
        outdoor_sensor: str | None,
        limit_temp: float = DEFAULT_HEATING_LIMIT_TEMP,
    ) -> None:
        self.hass = hass
        self.store = store
        self.outdoor_sensor = outdoor_sensor
        self.limit_temp = limit_temp
        self.state = HeatingPeriodState.from_dict(store.get(KEY_HEATING_PERIOD))
        self._unsubs: list = []

    @property
    def is_active(self) -> bool:
        return self.state.heating_period_active

    def set_active(self, active: bool) -> None:
        """Manual override; the next daily evaluation may change it again."""
        self.state.heating_period_active = bool(active)
        self._persist()

    def _persist(self) -> None:
        self.store.set(KEY_HEATING_PERIOD, self.state.to_dict())

    def add_sample(self, value: Any) -> bool:
        temp = safe_float(value)
        if temp is None:
            _LOGGER.warning("Invalid outdoor temperature %r from %s, ignoring", value, self.outdoor_sensor)
            return False
        self.state.temperature_sum += temp
        self.state.sample_count += 1
        self._persist()
        return True

    def close_day(self, now: datetime) -> bool:
        """Compute the daily average, reset the accumulators and decide the period."""
        s = self.state
        avg = s.temperature_sum / s.sample_count if s.sample_count > 0 else 0.0
        avg = round(avg, 2)
        _LOGGER.info(
            "Daily average outdoor temperature %.2f°C (sum %.2f / %d samples)",
            avg,
            s.temperature_sum,
            s.sample_count,
        )

        s.daily_average = avg
        s.temperature_sum = 0.0
        s.sample_count = 0
        s.last_reset = now.strftime("%d.%m.%Y")

        active, reason = determine_heating_period(avg, now.month, self.limit_temp)
        s.heating_period_active = active
        self._persist()
        _LOGGER.info("Heating period set to %s: %s", active, reason)
        return active

    async def async_start(self) -> None:
        if self.outdoor_sensor:

            @callback
            def _on_outdoor(event: Event) -> None:
                new_state = event.data.get("new_state")
                if new_state is None:
                    return
                self.add_sample(new_state.state)

            self._unsubs.append(
                async_track_state_change_event(self.hass, [self.outdoor_sensor], _on_outdoor)
            )

        async def _daily(now: datetime) -> None:
            try:
                self.close_day(dt_util.as_local(now))
                await self.store.async_save()
            except Exception as err:
                _LOGGER.exception("Daily heating period evaluation failed: %s", err)

        self._unsubs.append(
            async_track_time_change(
                self.hass,
                _daily,
                hour=HEATING_PERIOD_RESET_HOUR,
                minute=HEATING_PERIOD_RESET_MINUTE,
                second=0,
            )
        )

    async def async_stop(self) -> None:
        while self._unsubs:
            self._unsubs.pop()()
