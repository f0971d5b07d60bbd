"""Shared pacing and gap constants.

Every numeric literal that appears in more than one module lives here.
"""

from __future__ import annotations

from typing import Final
from uuid import UUID

# ---------------------------------------------------------------------------
# Device pacing
# ---------------------------------------------------------------------------
SAMPLE_RATE_HZ: Final[int] = 100
"""Sampling rate of every sensor kind on the wearable devices."""

SAMPLES_PER_PACKET: Final[int] = 124
"""Samples a device sends per packet; one window holds exactly one packet."""

DEFAULT_WINDOW_SIZE_S: Final[float] = SAMPLES_PER_PACKET / SAMPLE_RATE_HZ
"""1.24 s at the default pacing."""

# ---------------------------------------------------------------------------
# Gap tolerance
# ---------------------------------------------------------------------------
DEFAULT_MAX_GAP_S: Final[float] = 0.3
"""Largest gap (seconds) that is filled instead of splitting a range."""

DEFAULT_GAP_VALUE: Final[int] = 0x00
"""Byte written into every synthesised gap sample."""

TIME_EPSILON_SAMPLES: Final[float] = 1e-6
"""Tolerance (in samples) when converting absolute times to sample indices."""

# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------
MULTI_DEVICE_ID: Final[UUID] = UUID(int=0)
"""Reserved id of the virtual combined device (all zeros)."""
