"""Recorder history access and sample-window helpers.

The recorder plays the part of the time-series database: it is asked for the
raw state changes of one entity over a time range, and the numeric values are
turned into an ordered list of (timestamp, value) samples.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime
from functools import partial
from typing import Iterable, Sequence

from homeassistant.components.recorder import get_instance, history
from homeassistant.const import STATE_UNAVAILABLE, STATE_UNKNOWN
from homeassistant.core import HomeAssistant
from homeassistant.exceptions import HomeAssistantError
from homeassistant.util import dt as dt_util


_LOGGER = logging.getLogger(__name__)

Sample = tuple[datetime, float]


class HistoryUnavailable(HomeAssistantError):
    """Raised when no usable history could be retrieved."""


def _to_float(value) -> float | None:
    if value is None or value in (STATE_UNKNOWN, STATE_UNAVAILABLE):
        return None
    try:
        v = float(value)
    except (ValueError, TypeError):
        return None
    if not math.isfinite(v):
        return None
    return v


def states_to_samples(states: Iterable) -> list[Sample]:
    """Convert recorder State objects to ordered numeric samples."""
    samples: list[Sample] = []
    for st in states:
        v = _to_float(getattr(st, "state", None))
        if v is None:
            continue
        samples.append((st.last_updated, v))
    samples.sort(key=lambda s: s[0])
    return samples


async def async_fetch_history(
    hass: HomeAssistant, entity_id: str, start: datetime, end: datetime
) -> list[Sample]:
    """Fetch raw numeric history for one entity.

    Raises HistoryUnavailable if the recorder is not running, the query fails
    or the range holds no numeric samples.
    """
    if start.tzinfo is None:
        start = dt_util.as_utc(start)
    if end.tzinfo is None:
        end = dt_util.as_utc(end)

    try:
        instance = get_instance(hass)
        result = await instance.async_add_executor_job(
            partial(
                history.get_significant_states,
                hass,
                start,
                end,
                [entity_id],
                significant_changes_only=False,
            )
        )
    except Exception as err:
        raise HistoryUnavailable(f"History query for {entity_id} failed: {err}") from err

    samples = states_to_samples(result.get(entity_id, []))
    if not samples:
        raise HistoryUnavailable(f"No history found for {entity_id} between {start} and {end}")

    _LOGGER.debug("Loaded %d history samples for %s", len(samples), entity_id)
    return samples


def sanitize_values(
    values: Iterable[float | None], floor: float = 0.0, inclusive: bool = True
) -> list[float]:
    """Drop missing, non-finite and implausibly low values."""
    out: list[float] = []
    for v in values:
        if v is None or not math.isfinite(v):
            continue
        if v > floor or (inclusive and v == floor):
            out.append(v)
    return out


def samples_since(samples: Sequence[Sample], start: datetime) -> list[float]:
    """Values in effect from `start` on.

    The recorder only stores state changes, so the last sample before
    `start` still holds at `start` and is carried into the window.
    """
    values: list[float] = []
    carried: float | None = None
    at_start = False
    for ts, v in samples:
        if ts < start:
            carried = v
            continue
        if ts == start:
            at_start = True
        values.append(v)
    if carried is not None and not at_start:
        values.insert(0, carried)
    return values


def hourly_means(samples: Iterable[Sample]) -> list[float]:
    """Aggregate samples into chronologically ordered hourly means."""
    buckets: dict[datetime, list[float]] = {}
    for ts, v in samples:
        hour = ts.replace(minute=0, second=0, microsecond=0)
        buckets.setdefault(hour, []).append(v)
    return [sum(vals) / len(vals) for _, vals in sorted(buckets.items())]
