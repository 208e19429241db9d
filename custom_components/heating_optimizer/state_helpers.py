from __future__ import annotations

import math
from typing import Any

from homeassistant.const import STATE_ON, STATE_UNAVAILABLE, STATE_UNKNOWN
from homeassistant.core import HomeAssistant, State


def safe_float(x: Any) -> float | None:
    try:
        if x is None:
            return None
        v = float(x)
    except (ValueError, TypeError):
        return None
    if not math.isfinite(v):
        return None
    return v


def get_state(hass: HomeAssistant, entity_id: str | None) -> State | None:
    if not entity_id:
        return None
    st = hass.states.get(entity_id)
    if st is None or st.state in (STATE_UNKNOWN, STATE_UNAVAILABLE):
        return None
    return st


def read_float(
    hass: HomeAssistant,
    entity_id: str | None,
    min_value: float | None = None,
    max_value: float | None = None,
) -> float | None:
    """Numeric state of an entity, None if missing or outside the sane range."""
    st = get_state(hass, entity_id)
    if not st:
        return None
    v = safe_float(st.state)
    if v is None:
        return None
    if min_value is not None and v < min_value:
        return None
    if max_value is not None and v > max_value:
        return None
    return v


def read_bool(hass: HomeAssistant, entity_id: str | None) -> bool | None:
    """Boolean state of an entity (on/off, true/false, 1/0, open/home)."""
    st = get_state(hass, entity_id)
    if not st:
        return None
    s = str(st.state).lower()
    if s in (STATE_ON, "true", "1", "open", "home"):
        return True
    if s in ("off", "false", "0", "closed", "not_home"):
        return False
    return None
