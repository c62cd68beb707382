# runner.py
from __future__ import annotations

import runpy
from pathlib import Path
from typing import List

from .dsl import to_spec
from .model import ServiceSpec


# ----------------------------------------------------------------------
# Stack loading (local file)
# ----------------------------------------------------------------------

def load_stack(path: str | Path) -> List[ServiceSpec]:
    """
    Load a stack declaration from a python file path.

    The file must define either:
      - services() -> list
      - SERVICES = [...]

    Entries may be ServiceSpec objects or mappings (see dsl.to_spec).

    Returns:
      List[ServiceSpec]
    """
    stack_path = Path(path).expanduser().resolve()
    if not stack_path.exists():
        raise FileNotFoundError(f"Stack file not found: {stack_path}")
    if stack_path.suffix != ".py":
        raise ValueError(f"Stack file must be a .py file, got: {stack_path.name}")

    module_name = f"stackup_stack_{stack_path.stem}"
    globals_dict = runpy.run_path(str(stack_path), run_name=module_name)

    entries = None
    if "services" in globals_dict and callable(globals_dict["services"]):
        entries = globals_dict["services"]()
    elif "SERVICES" in globals_dict:
        entries = globals_dict["SERVICES"]

    if not isinstance(entries, list):
        raise TypeError(
            "Stack file must return/define a list of services. "
            "Define services() -> list or SERVICES = [...]."
        )

    return [to_spec(e) for e in entries]
