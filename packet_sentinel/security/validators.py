from __future__ import annotations

import re

SAFE_FILTER_PATTERN = re.compile(r"^[a-zA-Z0-9_. ()=><!&|:/\[\]-]*$")


def validate_capture_filter(filter_expression: str) -> bool:
    """Acepta expresiones BPF sin metacaracteres de shell."""
    return bool(SAFE_FILTER_PATTERN.fullmatch(filter_expression))
