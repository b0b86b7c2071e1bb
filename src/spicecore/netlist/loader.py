# src/spicecore/netlist/loader.py
import logging
import re
import string
from pathlib import Path
from typing import Any, Dict, List, Mapping, Union

import cerberus
import yaml

from .raw_data import ParsedDevice, ParsedModel, ParsedNetlist
from .exceptions import NetlistLoadError, SchemaValidationError

logger = logging.getLogger(__name__)

ID_REGEX = r"^[a-zA-Z_][a-zA-Z0-9_]*$"
ALLOWED_ID_CHARS = set(string.ascii_letters + string.digits + "_")

WAVEFORM_KINDS = ["pulse", "sin", "pwl", "exp"]
ANALYSIS_TYPES = ["op", "tran", "dc"]


class EnhancedValidator(cerberus.Validator):
    """Cerberus validator with the netlist's naming and uniqueness rules."""

    def _validate_id_regex(self, constraint: bool, field: str, value: Any):
        """
        Validates that a device or model name is a plain identifier.
        The rule's arguments are validated against this schema:
        {'type': 'boolean'}
        """
        if not constraint or not isinstance(value, str):
            return
        if not re.match(ID_REGEX, value):
            invalid_chars = sorted(set(value) - ALLOWED_ID_CHARS)
            self._error(
                field,
                f"Identifier '{value}' is invalid. Identifiers must start with a letter or underscore "
                f"and contain only letters, digits and underscores. Forbidden character(s): {invalid_chars}"
            )

    def _validate_unique_elements_by_key(self, key_for_uniqueness: str, field: str, value: List[Dict]):
        """
        Validates that all dictionaries in a list have a unique value for a given
        key, compared case-insensitively.
        The rule's arguments are validated against this schema:
        {'type': 'string'}
        """
        if not isinstance(value, list):
            return

        seen_keys = set()
        duplicates = []
        for item in value:
            if not isinstance(item, dict):
                continue
            item_key = item.get(key_for_uniqueness)
            if not isinstance(item_key, str):
                continue
            folded = item_key.lower()
            if folded in seen_keys:
                duplicates.append(item_key)
            else:
                seen_keys.add(folded)

        if duplicates:
            self._error(field, f"Duplicate values found for key '{key_for_uniqueness}': {sorted(set(duplicates))}")


class NetlistLoader:
    """
    Builds a `ParsedNetlist` from a structured description: either an in-memory
    mapping or a YAML document. The document is validated against a strict
    cerberus schema before any IR object is created.

    SPICE deck text is not handled here; that parser lives outside this package
    and produces `ParsedNetlist` objects directly.
    """
    _value_rule = {"type": ["string", "number"]}
    _node_rule = {"type": ["string", "integer"], "empty": False}

    _waveform_schema = {
        "kind": {"type": "string", "required": True, "allowed": WAVEFORM_KINDS},
        # pulse
        "v1": _value_rule, "v2": _value_rule, "delay": _value_rule,
        "rise": _value_rule, "fall": _value_rule, "width": _value_rule, "period": _value_rule,
        # sin
        "offset": _value_rule, "amplitude": _value_rule, "frequency": _value_rule,
        "damping": _value_rule, "phase": _value_rule,
        # pwl
        "points": {
            "type": "list", "minlength": 1,
            "schema": {"type": "list", "items": [_value_rule, _value_rule]},
        },
        # exp
        "td1": _value_rule, "tau1": _value_rule, "td2": _value_rule, "tau2": _value_rule,
    }

    _device_schema = {
        "name": {"type": "string", "required": True, "empty": False, "id_regex": True},
        "type": {"type": "string", "required": True, "empty": False},
        "ports": {"type": "dict", "required": True, "minlength": 1,
                  "keysrules": {"type": "string", "empty": False}, "valuesrules": _node_rule},
        "parameters": {"type": "dict", "required": False,
                       "keysrules": {"type": "string", "empty": False}, "valuesrules": _value_rule},
        "model": {"type": "string", "required": False, "empty": False},
        "transient": {"type": "dict", "required": False, "schema": _waveform_schema},
    }

    _model_schema = {
        "name": {"type": "string", "required": True, "empty": False, "id_regex": True},
        "type": {"type": "string", "required": True, "empty": False},
        "parameters": {"type": "dict", "required": False,
                       "keysrules": {"type": "string", "empty": False}, "valuesrules": _value_rule},
    }

    _analysis_schema = {
        "type": {"type": "string", "required": True, "allowed": ANALYSIS_TYPES},
        "step": _value_rule,
        "stop": _value_rule,
        "start": _value_rule,
        "source": {"type": "string", "empty": False},
        "probes": {"type": "list", "schema": {"type": "string", "empty": False}},
    }

    _schema = {
        "title": {"type": "string", "required": False},
        "devices": {"type": "list", "required": True, "unique_elements_by_key": "name",
                    "schema": {"type": "dict", "schema": _device_schema}},
        "models": {"type": "list", "required": False, "unique_elements_by_key": "name",
                   "schema": {"type": "dict", "schema": _model_schema}},
        "analyses": {"type": "list", "required": False,
                     "schema": {"type": "dict", "schema": _analysis_schema}},
        "options": {"type": "dict", "required": False,
                    "keysrules": {"type": "string"}, "valuesrules": {"type": ["string", "number"], "nullable": True}},
    }

    def __init__(self):
        self._validator = EnhancedValidator(self._schema)
        self._validator.allow_unknown = False
        logger.info("NetlistLoader initialized with strict structural validation rules.")

    def load(self, path: Union[str, Path]) -> ParsedNetlist:
        """Reads, validates and converts a YAML netlist file."""
        source = Path(path).resolve()
        logger.info(f"Loading netlist from: {source}")
        content = self._load_yaml(source)
        return self.load_mapping(content, source_path=source)

    def load_mapping(self, document: Mapping[str, Any], source_path: Path = None) -> ParsedNetlist:
        """Validates an in-memory netlist mapping and converts it to the IR."""
        if not isinstance(document, Mapping):
            raise NetlistLoadError(details="The netlist root must be a mapping.", file_path=source_path)
        if not self._validator.validate(dict(document)):
            raise SchemaValidationError(errors=self._validator.errors, file_path=source_path)
        data = self._validator.document

        node_names: List[str] = []
        seen_nodes = set()
        devices = []
        for raw in data["devices"]:
            ports = {port: str(node) for port, node in raw["ports"].items()}
            for node in ports.values():
                if node not in seen_nodes:
                    seen_nodes.add(node)
                    node_names.append(node)
            devices.append(
                ParsedDevice(
                    name=raw["name"],
                    device_type=raw["type"],
                    ports=ports,
                    parameters=dict(raw.get("parameters", {})),
                    model=raw.get("model"),
                    transient=raw.get("transient"),
                )
            )

        models = tuple(
            ParsedModel(name=raw["name"], model_type=raw["type"], parameters=dict(raw.get("parameters", {})))
            for raw in data.get("models", [])
        )

        default_title = source_path.stem if source_path else "untitled"
        netlist = ParsedNetlist(
            title=data.get("title") or default_title,
            devices=tuple(devices),
            models=models,
            analyses=tuple(data.get("analyses", [])),
            node_names=tuple(node_names),
            options=dict(data.get("options", {})),
            source_path=source_path,
        )
        logger.debug(f"Loaded netlist '{netlist.title}': {len(devices)} device(s), {len(models)} model(s).")
        return netlist

    def _load_yaml(self, source: Path) -> Dict[str, Any]:
        """Loads and performs basic sanity checks on a YAML file."""
        if not source.is_file():
            raise NetlistLoadError(details=f"Netlist file not found at path: {source}", file_path=source)
        try:
            with source.open("r", encoding="utf-8") as f:
                content = yaml.safe_load(f)
        except PermissionError as e:
            raise NetlistLoadError(details=f"Permission denied when trying to read file: {e}", file_path=source) from e
        except yaml.YAMLError as e:
            raise NetlistLoadError(details=f"Invalid YAML syntax: {e}", file_path=source) from e
        if content is None:
            raise NetlistLoadError(details="The YAML file is empty or contains no valid content.", file_path=source)
        if not isinstance(content, dict):
            raise NetlistLoadError(details="The root of the YAML file must be a dictionary (mapping).", file_path=source)
        return content
