# src/spicecore/validation/issue_codes.py
import logging
from enum import Enum

logger = logging.getLogger(__name__)


class TopologyIssueCode(Enum):
    """
    Registry of topology issue codes and their message templates.
    Each enum member's value is a tuple: (code_str, message_template_str).
    """

    # --- Node Connectivity Issues (NODE_CONN_...) ---
    NODE_CONN_FLOATING = ("NODE_CONN_FLOATING", "Node '{node_name}' has no DC path to ground; its operating point is set only by GMIN.")
    NODE_CONN_SINGLE = ("NODE_CONN_SINGLE", "Node '{node_name}' has only a single connection, to device '{device_name}' port '{port_name}'.")

    # --- Ground Issues (GND_...) ---
    GND_MISSING = ("GND_MISSING", "The circuit has {device_count} device(s) but none is connected to ground ('0' or 'gnd').")

    # --- Voltage-Defining Loop Issues (VLOOP_...) ---
    VLOOP_001 = ("VLOOP_001", "Device '{device_name}' closes a loop of voltage sources and inductors between nodes '{node_a}' and '{node_b}'; the MNA matrix will be singular.")

    @property
    def code(self) -> str:
        return self.value[0]

    @property
    def template(self) -> str:
        return self.value[1]

    def format_message(self, **kwargs) -> str:
        """Formats the message template with provided keyword arguments."""
        try:
            return self.template.format(**kwargs)
        except KeyError as e:
            logger.error(f"Missing key {e} for formatting message template of {self.name} (code: {self.code}): '{self.template}'. Provided args: {kwargs}")
            return f"Error formatting message for {self.code}: Missing key {e}. Template: '{self.template}' Args: {kwargs}"
