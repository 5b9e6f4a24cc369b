from __future__ import annotations

import itertools
import time

_sequence = itertools.count(1)


def document_number(prefix: str, branch_id: int) -> str:
    """``<prefix>-<branch>-<suffix>``, unique within and across runs."""
    return f"{prefix}-{branch_id}-{time.time_ns()}{next(_sequence):04d}"
