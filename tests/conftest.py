# tests/conftest.py
import pytest
from pathlib import Path
from typing import Any, Dict, Optional

from spicecore import CircuitBuilder, NetlistLoader, ParsedNetlist, ParsedDevice, ParsedModel
from spicecore.data_structures import Circuit


def device(name: str, device_type: str, ports: Dict[str, Any], model: Optional[str] = None,
           transient: Optional[Dict[str, Any]] = None, **parameters) -> ParsedDevice:
    """Shorthand for a ParsedDevice; keyword arguments become instance parameters."""
    return ParsedDevice(
        name=name,
        device_type=device_type,
        ports={k: str(v) for k, v in ports.items()},
        parameters=parameters,
        model=model,
        transient=transient,
    )


def netlist(*devices: ParsedDevice, models: tuple = (), title: str = "test", options: Optional[Dict] = None) -> ParsedNetlist:
    return ParsedNetlist(title=title, devices=tuple(devices), models=tuple(models), options=options or {})


@pytest.fixture
def builder() -> CircuitBuilder:
    return CircuitBuilder()


@pytest.fixture
def loader() -> NetlistLoader:
    return NetlistLoader()


@pytest.fixture
def divider_circuit(builder) -> Circuit:
    """V1=1.8 V -> R1=1k -> out -> R2=1k -> gnd."""
    return builder.build(netlist(
        device("V1", "VoltageSource", {"p": "in", "n": "0"}, dc="1.8 V"),
        device("R1", "Resistor", {"p1": "in", "p2": "out"}, resistance="1 kohm"),
        device("R2", "Resistor", {"p1": "out", "p2": "gnd"}, resistance=1000),
        title="divider",
    ))


@pytest.fixture
def rc_lowpass(builder) -> Circuit:
    """Pulse source stepping 0 -> 1 V at t = 0.105 ms into R=1k, C=1uF (tau = 1 ms)."""
    return builder.build(netlist(
        device("V1", "VoltageSource", {"p": "in", "n": "0"},
               transient={"kind": "pulse", "v1": 0, "v2": 1, "delay": "0.105 ms"}),
        device("R1", "Resistor", {"p1": "in", "p2": "out"}, resistance="1 kohm"),
        device("C1", "Capacitor", {"p1": "out", "p2": "0"}, capacitance="1 uF"),
        title="rc_lowpass",
    ))


@pytest.fixture
def diode_circuit(builder) -> Circuit:
    """V1=5 V -> R1=1k -> a -> D1 -> gnd."""
    return builder.build(netlist(
        device("V1", "VoltageSource", {"p": "vin", "n": "0"}, dc=5.0),
        device("R1", "Resistor", {"p1": "vin", "p2": "a"}, resistance=1000.0),
        device("D1", "Diode", {"anode": "a", "cathode": "0"}, model="dmod"),
        models=(ParsedModel(name="dmod", model_type="d", parameters={"is": 1e-14, "n": 1.0}),),
        title="diode",
    ))


@pytest.fixture
def netlist_dir(tmp_path: Path) -> Path:
    """A temporary directory holding a small set of YAML netlists."""
    (tmp_path / "divider.yaml").write_text("""
title: yaml_divider
devices:
  - name: V1
    type: VoltageSource
    ports: {p: in, n: 0}
    parameters: {dc: "1.8 V"}
  - name: R1
    type: Resistor
    ports: {p1: in, p2: out}
    parameters: {resistance: "1 kohm"}
  - name: R2
    type: Resistor
    ports: {p1: out, p2: gnd}
    parameters: {resistance: 1000}
analyses:
  - {type: op}
  - {type: dc, source: V1, start: "0 V", stop: "1.8 V", step: "0.1 V"}
options:
  reltol: 1e-4
""")

    (tmp_path / "inverter.yaml").write_text("""
title: cmos_inverter
devices:
  - {name: VDD, type: VoltageSource, ports: {p: vdd, n: 0}, parameters: {dc: 1.8}}
  - name: VIN
    type: VoltageSource
    ports: {p: in, n: 0}
    parameters: {dc: 0}
    transient: {kind: pwl, points: [[0, 0], ["1 ns", "1.8 V"]]}
  - {name: MP, type: Mosfet, ports: {d: out, g: in, s: vdd, b: vdd}, model: pch}
  - {name: MN, type: Mosfet, ports: {d: out, g: in, s: 0, b: 0}, model: nch}
  - {name: CL, type: Capacitor, ports: {p1: out, p2: 0}, parameters: {capacitance: "10 fF"}}
models:
  - {name: nch, type: nmos, parameters: {vth0: 0.45, kp: "120 uA/V**2"}}
  - {name: pch, type: pmos, parameters: {vth0: -0.45}}
analyses:
  - {type: tran, step: "10 ps", stop: "2 ns"}
""")

    (tmp_path / "bad_schema.yaml").write_text("""
devices:
  - name: 1R
    type: Resistor
    ports: {p1: a, p2: 0}
    colour: red
""")

    (tmp_path / "not_a_mapping.yaml").write_text("- just\n- a list\n")
    (tmp_path / "empty.yaml").write_text("")
    (tmp_path / "broken.yaml").write_text("devices: [unclosed\n")
    return tmp_path
