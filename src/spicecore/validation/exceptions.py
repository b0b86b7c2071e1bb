# src/spicecore/validation/exceptions.py
"""
The diagnosable error raised when a strict topology check finds problems.
"""
from typing import List

from .issues import ValidationIssue, ValidationIssueLevel
from ..errors import DiagnosableError, format_diagnostic_report


class SemanticValidationError(DiagnosableError):
    """
    Raised when topology validation finds one or more error-level issues.
    Only the `ERROR` issues of the given list are kept and reported.
    """
    def __init__(self, issues: List[ValidationIssue]):
        self.issues: List[ValidationIssue] = [
            issue for issue in issues if issue.level == ValidationIssueLevel.ERROR
        ]
        if not self.issues:
            summary_message = "SemanticValidationError was raised with no error-level issues."
        else:
            summary_message = (
                f"Topology validation failed with {len(self.issues)} error(s):\n"
                + "\n".join(f"  - {issue}" for issue in self.issues)
            )
        super().__init__(summary_message)

    def get_diagnostic_report(self) -> str:
        error_lines = [str(issue) for issue in self.issues]
        details = (
            f"The circuit topology cannot be solved reliably.\n"
            f"Found {len(self.issues)} error(s). See details below:\n\n"
            + "\n".join(f"  - {line}" for line in error_lines)
        )

        context = {}
        first_issue = self.issues[0] if self.issues else None
        if first_issue:
            if first_issue.device_name:
                context['device'] = first_issue.device_name
            if first_issue.node_name:
                context['node'] = first_issue.node_name

        return format_diagnostic_report(
            error_type="Circuit Topology Validation Error",
            details=details,
            suggestion="Connect every node to ground through a DC path and remove loops of voltage sources and inductors.",
            context=context
        )
