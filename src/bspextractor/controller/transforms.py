"""
Transform Decoder & Placement Filter
====================================
Decodes static model placements and decides which of them reach the scene.

Why is this file needed?
------------------------
1. Orientation: The engine stores a 3x3 basis. Editors and the exported
   .map format expect Euler angles in degrees.
2. Filtering: Placement tables contain effect proxies, view models and
   garbage names. These are excluded before export.
3. Bounded cleanup: Names are reduced to a safe character class under a
   cooperative step/time budget. When the budget runs out the name becomes
   empty rather than partially cleaned.
"""
from __future__ import annotations

import logging
import math
import re
import time
from dataclasses import replace
from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np

from bspextractor.config import (
    MAX_MODEL_SCALE,
    MIN_MODEL_SCALE,
    SANITIZE_CHECK_INTERVAL,
    SANITIZE_TIMEOUT_SECONDS,
)
from bspextractor.model.scene import StaticModelPlacement

logger = logging.getLogger(__name__)

# Name filtering rules
DISALLOWED_CHARACTERS = frozenset("'\\*?")
EXCLUDED_MARKERS = ("fx", "viewmodel")

_KEEP_CHARACTER = re.compile(r"[\w.@-]")

# cos(pitch) at or below this counts as gimbal lock, i.e. pitch within
# ~4e-15 rad of +-90 degrees
_GIMBAL_EPSILON = 16.0 * np.finfo(np.float64).eps

NameRewrites = Sequence[Tuple[str, str]]


# ------------------------------------------------------------------------------
# Orientation
# ------------------------------------------------------------------------------
def matrix_to_euler(rows: Sequence[float]) -> Tuple[float, float, float]:
    """
    Decompose a row-major 3x3 basis (nine floats) into Euler angles (radians).

    When the basis is close to gimbal lock the Z angle is fixed at zero and
    the X angle is taken from the second and third rows instead.
    """
    m = np.asarray(rows, dtype=np.float64).reshape(3, 3)
    cy = math.hypot(m[0, 0], m[0, 1])
    if cy > _GIMBAL_EPSILON:
        x = math.atan2(m[1, 2], m[2, 2])
        y = math.atan2(-m[0, 2], cy)
        z = math.atan2(m[0, 1], m[0, 0])
    else:
        x = math.atan2(-m[2, 1], m[1, 1])
        y = math.atan2(-m[0, 2], cy)
        z = 0.0
    return x, y, z


def euler_degrees(rows: Sequence[float]) -> Tuple[float, float, float]:
    x, y, z = matrix_to_euler(rows)
    return math.degrees(x), math.degrees(y), math.degrees(z)


def decode_placement(
        name: str,
        position: Sequence[float],
        rows: Sequence[float],
        scale: float,
) -> StaticModelPlacement:
    """Position and scale are copied as stored; only the basis is converted."""
    return StaticModelPlacement(
        name=name,
        position=(float(position[0]), float(position[1]), float(position[2])),
        rotation=euler_degrees(rows),
        scale=float(scale),
    )


# ------------------------------------------------------------------------------
# Names
# ------------------------------------------------------------------------------
def is_excluded(name: str, scale: float) -> bool:
    if not name:
        return True
    if any(character in DISALLOWED_CHARACTERS for character in name):
        return True
    if any(marker in name for marker in EXCLUDED_MARKERS):
        return True
    # NaN fails both comparisons and is excluded too
    return not (MIN_MODEL_SCALE <= scale <= MAX_MODEL_SCALE)


def rewrite_name(name: str, rewrites: NameRewrites) -> str:
    """Apply substring rewrites until none of the markers remain."""
    for old, new in rewrites:
        if not old or old in new:
            raise ValueError(f"Rewrite {old!r} -> {new!r} would never settle")
        while old in name:
            name = name.replace(old, new)
    return name


def sanitize_name(
        name: str,
        timeout: float = SANITIZE_TIMEOUT_SECONDS,
        max_steps: Optional[int] = None,
) -> str:
    """
    Keep word characters, '.', '@' and '-'; drop everything else.

    Every character costs one step. The wall clock is checked every
    SANITIZE_CHECK_INTERVAL steps. Running out of steps or time yields "".
    """
    deadline = time.monotonic() + timeout
    kept: List[str] = []
    for step, character in enumerate(name):
        if max_steps is not None and step >= max_steps:
            logger.debug(f"Sanitising {name[:32]!r}... ran out of steps after {step}")
            return ""
        if step % SANITIZE_CHECK_INTERVAL == 0 and time.monotonic() > deadline:
            logger.debug(f"Sanitising {name[:32]!r}... timed out after {step} steps")
            return ""
        if _KEEP_CHARACTER.fullmatch(character):
            kept.append(character)
    return "".join(kept)


def _settle_name(
        name: str,
        rewrites: NameRewrites,
        timeout: float,
        max_steps: Optional[int],
) -> str:
    # Sanitising can join characters into a new rewrite marker, so repeat
    # until both steps leave the name unchanged. Each pass never grows it.
    # Every pass draws on the same time and step budget.
    deadline = time.monotonic() + timeout
    steps_left = max_steps
    while True:
        candidate = rewrite_name(name, rewrites)
        cleaned = sanitize_name(candidate, deadline - time.monotonic(), steps_left)
        if cleaned == name:
            return cleaned
        if not cleaned:
            return ""
        if steps_left is not None:
            steps_left -= len(candidate)
        name = cleaned


def filter_placements(
        placements: Iterable[StaticModelPlacement],
        rewrites: NameRewrites = (),
        timeout: float = SANITIZE_TIMEOUT_SECONDS,
        max_steps: Optional[int] = None,
) -> List[StaticModelPlacement]:
    """
    Rewrite, exclude and sanitise placement names.

    Order is preserved. Running the filter over its own output returns the
    same list.
    """
    kept: List[StaticModelPlacement] = []
    excluded = 0
    for placement in placements:
        name = rewrite_name(placement.name, rewrites)
        if is_excluded(name, placement.scale):
            excluded += 1
            continue

        name = _settle_name(name, rewrites, timeout, max_steps)
        # Sanitising may empty the name or expose an excluded marker
        if is_excluded(name, placement.scale):
            excluded += 1
            continue

        kept.append(placement if name == placement.name else replace(placement, name=name))

    if excluded:
        logger.debug(f"Excluded {excluded} static model placements")
    return kept
