"""
Configuration & Constants
=========================
This module serves as the central registry for global constants.

Why is this file needed?
------------------------
1. Abstraction: It prevents magic numbers (unit scale, filter bounds, time
   budgets) from being scattered throughout the decoding code.
2. Formatting: Writers receive the decimal precision explicitly from here
   instead of relying on any process-wide locale state.

Game builds are NOT configured here. They are compiled into
`bspextractor.model.profiles` because every build needs exact byte offsets.
"""
from pathlib import Path

# Positions are stored in engine units (inches), exported in centimetres
UNIT_SCALE: float = 2.54

# Placement filter (static models outside this range are editor helpers)
MIN_MODEL_SCALE: float = 0.001
MAX_MODEL_SCALE: float = 10.0

# Model name sanitisation budget
SANITIZE_TIMEOUT_SECONDS: float = 1.5
SANITIZE_CHECK_INTERVAL: int = 256

# Entity records carry no scale, the editor expects one
DEFAULT_ENTITY_SCALE: str = "1.0000"

# Text output
FLOAT_DECIMALS: int = 4
STRING_READ_CHUNK: int = 256
MAX_STRING_LENGTH: int = 0x400000  # entity blobs can be several MB

# Export
EXPORT_ROOT: Path = Path("exported_maps")
