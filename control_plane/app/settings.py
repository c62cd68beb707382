from __future__ import annotations
import os

STACK_FILE = os.environ.get("STACKUP_STACK_FILE")
AUTOSTART = os.environ.get("STACKUP_AUTOSTART", "1").strip().lower() in ("1", "true", "yes")
