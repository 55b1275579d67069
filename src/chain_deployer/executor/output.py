"""Parsing of ``NAME=VALUE`` result lines printed by deployment scripts."""

from __future__ import annotations

import re
from typing import Dict

# A line reports a result only when the name starts it (leading whitespace
# allowed) and the value is a hex address or a decimal integer.
DEPLOYED_VALUE_RE = re.compile(r"^\s*([A-Za-z0-9_]+)=(0x[0-9a-fA-F]+|\d+)\b")


def parse_deployed_values(stdout: str) -> Dict[str, str]:
    """Extract ``{name: value}`` from tool output, later lines overriding earlier ones."""
    values: Dict[str, str] = {}
    for line in stdout.splitlines():
        match = DEPLOYED_VALUE_RE.match(line)
        if match:
            name, value = match.groups()
            values[name] = value
    return values
