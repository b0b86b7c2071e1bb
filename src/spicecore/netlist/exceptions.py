# src/spicecore/netlist/exceptions.py
"""
Diagnosable exceptions raised while loading a structured netlist.

`NetlistLoadError` covers file-level problems (missing file, invalid YAML,
wrong root type); `SchemaValidationError` covers documents that are valid YAML
but do not match the netlist schema. Both derive from `DiagnosableError` so
callers can catch the whole family with a single clause.
"""
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..errors import DiagnosableError, format_diagnostic_report


def _flatten_cerberus_errors(errors: Dict[Any, Any], prefix: str = "") -> List[str]:
    """Turns cerberus' nested error tree into 'field.path: message' lines."""
    lines: List[str] = []
    for key, entries in sorted(errors.items(), key=lambda kv: str(kv[0])):
        path = f"{prefix}.{key}" if prefix else str(key)
        for entry in entries if isinstance(entries, list) else [entries]:
            if isinstance(entry, dict):
                lines.extend(_flatten_cerberus_errors(entry, path))
            else:
                lines.append(f"{path}: {entry}")
    return lines


@dataclass()
class NetlistLoadError(DiagnosableError):
    """The netlist source could not be read or is not a mapping."""
    details: str
    file_path: Optional[Path] = None

    def __str__(self):
        where = f" in '{self.file_path}'" if self.file_path else ""
        return f"Netlist load error{where}: {self.details}"

    def get_diagnostic_report(self) -> str:
        return format_diagnostic_report(
            error_type="Netlist Load Error",
            details=self.details,
            suggestion="Ensure the file exists, is readable, and contains a YAML mapping at its root.",
            context={'source_file': self.file_path}
        )


@dataclass()
class SchemaValidationError(DiagnosableError):
    """
    The netlist document does not conform to the schema (missing keys, unknown
    fields, duplicate device names, malformed waveform specs).
    """
    errors: Dict[str, Any]
    file_path: Optional[Path] = None

    @property
    def messages(self) -> List[str]:
        return _flatten_cerberus_errors(self.errors)

    def __str__(self):
        where = f" for '{self.file_path}'" if self.file_path else ""
        return f"Netlist schema validation failed{where}:\n" + "\n".join(f"  - {m}" for m in self.messages)

    def get_diagnostic_report(self) -> str:
        messages = self.messages
        details = (
            "The netlist document does not conform to the required schema.\n"
            f"See details for {len(messages)} issue(s) below:\n\n"
            + "\n".join(f"  - {m}" for m in messages)
        )
        return format_diagnostic_report(
            error_type="Netlist Schema Validation Error",
            details=details,
            suggestion="Correct the listed fields. Every device needs a unique 'name', a 'type' and a 'ports' mapping.",
            context={'source_file': self.file_path}
        )
