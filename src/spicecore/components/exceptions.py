# src/spicecore/components/exceptions.py
"""
Diagnosable exceptions for the components subsystem.
"""
from dataclasses import dataclass
from typing import Optional

from ..errors import DiagnosableError, format_diagnostic_report


@dataclass()
class ComponentError(DiagnosableError):
    """
    Raised when a device is given an invalid parameter value or waveform
    specification (negative resistance, zero channel length, a PWL table whose
    times go backwards, ...).
    """
    component_name: str
    details: str
    point: Optional[float] = None

    def __str__(self):
        return f"Device '{self.component_name}': {self.details}"

    def get_diagnostic_report(self) -> str:
        return format_diagnostic_report(
            error_type="Device Parameter Error",
            details=self.details,
            suggestion="Check the device's parameters and model card (e.g. non-negative resistance, positive channel length).",
            context={'device': self.component_name, 'point': self.point}
        )
