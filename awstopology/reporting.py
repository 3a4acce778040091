from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import pulumi

from .errors import NamingCollision
from .graph import AttributeRef, Template


@dataclass(frozen=True)
class OutputLine:
    key: str
    value: Template
    description: str = ""


class Reporter:
    """
    Collects the operator-facing lines describing created resources.

    The lines are informational only; builders hand them over and never
    read them back. Each line is logged as it is recorded and becomes an
    entry in the manifest outputs.
    """

    def __init__(self, log: bool = True):
        self.log = log
        self._lines: List[OutputLine] = []

    def record(self, key: str, label: str, value: Any, description: str = "") -> OutputLine:
        for line in self._lines:
            if line.key == key:
                raise NamingCollision(key, f"output line '{describe(line.value)}'", f"output line '{label}'")
        if isinstance(value, Template):
            template = Template.of(f"{label}: ", *value.parts)
        else:
            template = Template.of(f"{label}: ", value)
        line = OutputLine(key, template, description)
        self._lines.append(line)
        if self.log:
            pulumi.log.info(f"{key} -> {describe(template)}")
        return line

    @property
    def lines(self) -> List[OutputLine]:
        return list(self._lines)

    def outputs(self) -> Dict[str, Template]:
        return {line.key: line.value for line in self._lines}


def describe(value: Optional[Any]) -> str:
    """Human-readable text for a template, with references shown as `<name.attr>`."""
    if isinstance(value, Template):
        return "".join(describe(p) for p in value.parts)
    if isinstance(value, AttributeRef):
        return f"<{value.source}.{value.attribute}>"
    return "" if value is None else str(value)
