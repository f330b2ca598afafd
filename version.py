"""Central location for the Shader Patch installer version."""
from __future__ import annotations

import os

APP_VERSION: str = os.environ.get("SPINSTALLER_VERSION", "0.0.0")
"""Current installer version string.

The value defaults to ``"0.0.0"`` when running from source, but release builds
should inject the real version using the ``SPINSTALLER_VERSION`` environment
variable during packaging.
"""
