# tests/property/conftest.py
"""Shared Hypothesis strategies for property-based tests.

Usage:
    from tests.property.conftest import telemetry_events

    @given(event=telemetry_events)
    def test_event_survives_storage(event: TelemetryEvent) -> None:
        ...
"""

# =============================================================================
# Hypothesis Settings
# =============================================================================
#
# For standardized @settings decorators, import from tests.property.settings.
# Tiers: DETERMINISM (500), STATE_MACHINE (200), STANDARD (100), SLOW (50), QUICK (20)
# =============================================================================

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from hypothesis import strategies as st

from pulsekit.contracts.enums import EventType
from pulsekit.contracts.events import TelemetryEvent

# =============================================================================
# Scalars
# =============================================================================

identifiers = st.text(
    min_size=1,
    max_size=24,
    alphabet=st.characters(whitelist_categories=("L", "N"), whitelist_characters="-_"),
)

# Plain words: no digits or punctuation, so no PII pattern can match
plain_words = st.text(min_size=1, max_size=12, alphabet="abcdefghijklmnopqrstuvwxyz").filter(lambda w: w != "bearer")
plain_text = st.lists(plain_words, min_size=0, max_size=8).map(" ".join)

event_types = st.sampled_from(list(EventType))

# Microsecond precision and UTC, the precision every provider keeps
timestamps = st.datetimes(
    min_value=datetime(2000, 1, 1),
    max_value=datetime(2100, 1, 1),
).map(lambda dt: dt.replace(tzinfo=UTC))

finite_floats = st.floats(allow_nan=False, allow_infinity=False, min_value=-1e9, max_value=1e9)

# =============================================================================
# JSON-like metadata
# =============================================================================

json_primitives = st.none() | st.booleans() | st.integers(-(2**31), 2**31) | finite_floats | plain_text

json_values = st.recursive(
    json_primitives,
    lambda children: st.lists(children, max_size=4) | st.dictionaries(plain_words, children, max_size=4),
    max_leaves=20,
)

metadata_dicts = st.dictionaries(plain_words, json_values, max_size=5)

# =============================================================================
# Events
# =============================================================================

telemetry_events = st.builds(
    TelemetryEvent,
    id=identifiers,
    session_id=identifiers,
    event_type=event_types,
    timestamp=timestamps,
    category=plain_words,
    action=plain_words,
    label=st.none() | plain_text,
    value=st.none() | finite_floats,
    duration=st.none() | st.floats(min_value=0, max_value=1e6, allow_nan=False),
    metadata=st.none() | metadata_dicts,
    context=st.dictionaries(plain_words, plain_text, max_size=3),
)


@st.composite
def event_batches(draw: st.DrawFn, min_size: int = 0, max_size: int = 20) -> list[TelemetryEvent]:
    """Events with unique ids and timestamps spread over one day."""
    count = draw(st.integers(min_value=min_size, max_value=max_size))
    base = datetime(2026, 1, 30, tzinfo=UTC)
    batch = []
    for index in range(count):
        event = draw(telemetry_events)
        offset = draw(st.integers(min_value=0, max_value=86_399))
        batch.append(
            TelemetryEvent(
                id=f"evt-{index}",
                session_id=draw(st.sampled_from(["s1", "s2", "s3"])),
                event_type=event.event_type,
                timestamp=base + timedelta(seconds=offset),
                category=draw(st.sampled_from(["cart", "auth", "agent"])),
                action=event.action,
                label=event.label,
                value=event.value,
                duration=event.duration,
                metadata=event.metadata,
                context=event.context,
            )
        )
    return batch
