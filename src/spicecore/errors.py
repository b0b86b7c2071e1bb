# src/spicecore/errors.py
"""
Error types shared by every layer, and the single report format they render to.

Exceptions that end up in front of a user implement `get_diagnostic_report`.
Analyses never raise them for numerical trouble; the drivers catch them and
store the report on a `SimulationIssue`.
"""
import logging
from numbers import Real
from typing import Any, Dict, Protocol, Tuple, abstractmethod
from typing import runtime_checkable

logger = logging.getLogger(__name__)

#: Context keys rendered in the report header, in display order.
REPORT_CONTEXT_FIELDS: Tuple[Tuple[str, str], ...] = (
    ('device', "Device"),
    ('node', "Node"),
    ('source_file', "Netlist"),
    ('user_input', "Input"),
    ('point', "At point"),
)

_RULE_WIDTH = 72


class SpiceCoreError(Exception):
    """Root of the errors raised to callers of the public API."""


class CircuitBuildError(SpiceCoreError):
    """A ParsedNetlist could not be turned into a Circuit. The message is the full report."""


class SimulationRunError(SpiceCoreError):
    """
    An analysis failed for a reason other than its numerics or its inputs.
    Non-convergence, singular systems and bad configuration are reported in
    the SimulationResult, never through this exception.
    """


@runtime_checkable
class Diagnosable(Protocol):
    def get_diagnostic_report(self) -> str:
        ...


class DiagnosableError(Exception, Diagnosable):
    """
    Base for internal exceptions that carry their own report. Subclasses that
    leave `get_diagnostic_report` abstract cannot be instantiated.
    """
    @abstractmethod
    def get_diagnostic_report(self) -> str:
        raise NotImplementedError


def _render_context_value(key: str, value: Any) -> str:
    if key == 'user_input':
        return f"'{value}'"
    if key == 'point' and isinstance(value, Real):
        return f"{value:.6g}"
    return str(value)


def _indented(block: str) -> list:
    return [f"    {line}" for line in block.splitlines()]


def format_diagnostic_report(
    error_type: str,
    details: str,
    suggestion: str,
    context: Dict[str, Any]
) -> str:
    """
    Renders a diagnostic as a framed block of text.

    Args:
        error_type: Short title, e.g. "Singular Matrix Encountered".
        details: What went wrong; may span several lines.
        suggestion: How to fix it; omitted when empty.
        context: Values for the keys in REPORT_CONTEXT_FIELDS. Missing keys,
                 None and empty strings are skipped; `point` (a simulated time
                 or swept value) is shown even when it is zero.
    """
    title = f" spicecore diagnostic: {error_type} "
    lines = ["", title.center(_RULE_WIDTH, "=")]

    label_width = max(len(label) for _, label in REPORT_CONTEXT_FIELDS)
    for key, label in REPORT_CONTEXT_FIELDS:
        value = context.get(key)
        if value is None or value == "":
            continue
        lines.append(f"{label.ljust(label_width)} : {_render_context_value(key, value)}")

    lines.append("What happened:")
    lines.extend(_indented(details))
    if suggestion:
        lines.append("How to fix it:")
        lines.extend(_indented(suggestion))

    lines.append("=" * _RULE_WIDTH)
    return "\n".join(lines)
