"""Dotted-path lookup and ``{{ path }}`` template interpolation."""

import json
import re
from typing import Any, Mapping, Optional

_PLACEHOLDER = re.compile(r"\{\{\s*([^}]+?)\s*\}\}")


def get_by_path(data: Any, path: Optional[str]) -> Any:
    """Resolve a dotted path such as ``customer.address.city``.

    Returns None when any segment is missing. List items can be addressed
    by index (``items.0.name``).
    """
    if data is None or not path:
        return None
    current = data
    for part in path.split('.'):
        if isinstance(current, Mapping) and part in current:
            current = current[part]
        elif isinstance(current, (list, tuple)) and part.isdigit() and int(part) < len(current):
            current = current[int(part)]
        else:
            return None
    return current


def to_display_string(value: Any) -> str:
    """String form of a payload value as it appears in rendered templates."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return str(value)


def interpolate(template: Optional[str], data: Any) -> str:
    """Replace every ``{{ path }}`` in ``template`` with the value found in ``data``.

    Missing paths render as an empty string; this never raises.
    """
    if not template:
        return ""
    return _PLACEHOLDER.sub(lambda match: to_display_string(get_by_path(data, match.group(1).strip())), template)
