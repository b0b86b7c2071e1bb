# src/spicecore/validation/issues.py
import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional, Dict, Any

logger = logging.getLogger(__name__)


class ValidationIssueLevel(Enum):
    """Severity level of a validation issue."""
    ERROR = "ERROR"
    WARNING = "WARNING"
    INFO = "INFO"

    def __str__(self):
        return self.value


@dataclass
class ValidationIssue:
    """
    Represents a single problem found by a topology check, with the device
    and node it concerns where there is one.
    """
    level: ValidationIssueLevel
    code: str
    message: str
    device_name: Optional[str] = None
    node_name: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        parts = [f"[{self.level.name} - {self.code}]"]
        if self.device_name:
            parts.append(f"Device: {self.device_name}")
        if self.node_name:
            parts.append(f"Node: {self.node_name}")
        parts.append(f"Message: {self.message}")

        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in sorted(self.details.items()))
            parts.append(f"Details: ({details_str})")

        return " ".join(parts)
