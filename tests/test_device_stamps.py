# tests/test_device_stamps.py

"""
Tests for the device capability system and the MNA stamps each device
contributes, checked against hand-derived matrices.
"""

import numpy as np
import pytest

from spicecore import CircuitBuilder
from spicecore.components import (
    COMPONENT_REGISTRY, DeviceBase, ICompanionModel, IConnectivityProvider, IIndependentSource,
    IStampContributor, Capacitor, Resistor, register_component,
)
from spicecore.components.semiconductors import diode_current
from spicecore.constants import GMIN_SIEMENS
from spicecore.simulation import MnaAssembler, MnaSystem, SimulationContext

from conftest import device, netlist


def assemble(circuit, unknowns=None, context=None, states=None) -> MnaSystem:
    system = MnaSystem(circuit.unknown_count)
    x = np.zeros(circuit.unknown_count) if unknowns is None else np.asarray(unknowns, dtype=float)
    MnaAssembler(circuit).assemble(system, x, context or SimulationContext(), states)
    return system


class TestDeviceRegistration:
    """The @register_component decorator and capability discovery."""

    def test_decorator_rejects_duplicate_ports(self):
        """VERIFIES: Port names must be unique."""
        with pytest.raises(TypeError, match="unique"):
            @register_component("BadPortsDevice")
            class BadPorts(DeviceBase):
                @classmethod
                def declare_parameters(cls): return {}

                @classmethod
                def declare_ports(cls): return ["a", "a"]

        assert "BadPortsDevice" not in COMPONENT_REGISTRY

    def test_decorator_rejects_bad_parameter_declaration(self):
        """VERIFIES: declare_parameters must return a Dict[str, str]."""
        with pytest.raises(TypeError, match="declare_parameters"):
            @register_component("BadParamsDevice")
            class BadParams(DeviceBase):
                @classmethod
                def declare_parameters(cls): return ["resistance"]

                @classmethod
                def declare_ports(cls): return ["a", "b"]

    def test_decorator_rejects_non_device_class(self):
        """VERIFIES: Only DeviceBase subclasses may be registered."""
        with pytest.raises(TypeError, match="must inherit from DeviceBase"):
            @register_component("NotADevice")
            class NotADevice:
                pass

    def test_capabilities_are_discovered_and_cached(self, rc_lowpass):
        """VERIFIES: get_capability returns the nested implementation once per instance, or None."""
        cap = rc_lowpass.find_device("C1")
        companion = cap.get_capability(ICompanionModel)
        assert companion is not None
        assert cap.get_capability(ICompanionModel) is companion
        assert rc_lowpass.find_device("R1").get_capability(ICompanionModel) is None
        assert rc_lowpass.find_device("V1").get_capability(IIndependentSource) is not None
        assert rc_lowpass.find_device("R1").get_capability(IIndependentSource) is None

    def test_inherited_capability_can_be_overridden(self):
        """VERIFIES: The most derived @provides implementation wins."""
        declared_resistor = Resistor.declare_capabilities()
        declared_capacitor = Capacitor.declare_capabilities()
        assert declared_resistor[IConnectivityProvider] is DeviceBase.ConnectivityProvider
        assert declared_capacitor[IConnectivityProvider] is Capacitor.ConnectivityProvider
        assert IStampContributor in declared_resistor

    def test_connectivity(self, builder: CircuitBuilder):
        """VERIFIES: DC connectivity per device type."""
        circuit = builder.build(netlist(
            device("R1", "Resistor", {"p1": "a", "p2": "0"}, resistance=1),
            device("C1", "Capacitor", {"p1": "a", "p2": "0"}, capacitance=1e-9),
            device("I1", "CurrentSource", {"p": "a", "n": "0"}, dc=1e-3),
            device("M1", "Mosfet", {"d": "a", "g": "b", "s": "0"}),
        ))

        def pairs(name):
            dev = circuit.find_device(name)
            return dev.get_capability(IConnectivityProvider).get_connectivity(dev)

        assert pairs("R1") == [("p1", "p2")]
        assert pairs("C1") == []
        assert pairs("I1") == []
        assert pairs("M1") == [("d", "s")]


class TestLinearStamps:

    def test_divider_matrix(self, divider_circuit):
        """VERIFIES: Resistor and voltage-source stamps, with ground rows and columns dropped."""
        system = assemble(divider_circuit)
        expected = np.array([
            [1e-3, -1e-3, 1.0],
            [-1e-3, 2e-3, 0.0],
            [1.0, 0.0, 0.0],
        ])
        np.testing.assert_allclose(system.to_dense(), expected)
        np.testing.assert_allclose(system.rhs, [0.0, 0.0, 1.8])

    def test_current_source_injects_into_n(self, builder: CircuitBuilder):
        """VERIFIES: A current source drives its current from p through itself into n."""
        circuit = builder.build(netlist(
            device("I1", "CurrentSource", {"p": "0", "n": "a"}, dc="2 mA"),
            device("R1", "Resistor", {"p1": "a", "p2": "0"}, resistance=500),
        ))
        system = assemble(circuit)
        np.testing.assert_allclose(system.rhs, [2e-3])

    def test_capacitor_open_at_dc(self, rc_lowpass):
        """VERIFIES: Without companion states the capacitor stamps nothing."""
        system = assemble(rc_lowpass)
        out = rc_lowpass.node_index("out")
        assert system.to_dense()[out, out] == pytest.approx(1e-3)

    def test_capacitor_companion(self, rc_lowpass):
        """VERIFIES: Backward Euler adds C/h in parallel and a C/h*v_prev source into p1."""
        step = 1e-5
        context = SimulationContext().at_time(step, step)
        system = assemble(rc_lowpass, context=context, states={"C1": 0.5})
        out = rc_lowpass.node_index("out")
        geq = 1e-6 / step
        assert system.to_dense()[out, out] == pytest.approx(1e-3 + geq)
        assert system.rhs[out] == pytest.approx(geq * 0.5)

    def test_inductor_dc_short_and_companion(self, builder: CircuitBuilder):
        """VERIFIES: The inductor branch row enforces V(p1)-V(p2) = 0 at DC and adds -L/h in transient."""
        circuit = builder.build(netlist(
            device("I1", "CurrentSource", {"p": "0", "n": "a"}, dc=1.0),
            device("L1", "Inductor", {"p1": "a", "p2": "0"}, inductance="2 mH"),
        ))
        dc = assemble(circuit).to_dense()
        np.testing.assert_allclose(dc, [[0.0, 1.0], [1.0, 0.0]])

        step = 1e-4
        system = assemble(circuit, context=SimulationContext().at_time(step, step), states={"L1": 0.25})
        br = circuit.find_device("L1").branch_index
        assert system.to_dense()[br, br] == pytest.approx(-2e-3 / step)
        assert system.rhs[br] == pytest.approx(-(2e-3 / step) * 0.25)

    def test_companion_states_from_solution(self, builder: CircuitBuilder):
        """VERIFIES: Capacitors report their voltage and inductors their branch current as state."""
        circuit = builder.build(netlist(
            device("C1", "Capacitor", {"p1": "a", "p2": "b"}, capacitance=1e-9),
            device("L1", "Inductor", {"p1": "b", "p2": "0"}, inductance=1e-9),
        ))
        states = MnaAssembler(circuit).companion_states(np.array([3.0, 1.0, 0.2]))
        assert states == {"C1": pytest.approx(2.0), "L1": pytest.approx(0.2)}

    def test_companion_stamp_needs_positive_step(self, rc_lowpass):
        """VERIFIES: Companion stamping without a time step is rejected."""
        from spicecore.simulation import MnaInputError
        with pytest.raises(MnaInputError):
            assemble(rc_lowpass, states={"C1": 0.0})


class TestNonlinearStamps:

    def test_diode_linearisation(self, diode_circuit):
        """VERIFIES: The diode stamps g + GMIN and the equivalent current i - g*v."""
        a = diode_circuit.node_index("a")
        x = np.zeros(diode_circuit.unknown_count)
        x[a] = 0.65
        system = assemble(diode_circuit, unknowns=x)
        i, g = diode_current(0.65, 1e-14, 1.0)
        assert system.to_dense()[a, a] == pytest.approx(1e-3 + g + GMIN_SIEMENS)
        assert system.rhs[a] == pytest.approx(-(i - g * 0.65))

    def test_mosfet_companion_reproduces_drain_current(self, builder: CircuitBuilder):
        """VERIFIES: At the iterate, the linearised MOSFET stamp carries exactly the device current."""
        circuit = builder.build(netlist(device("M1", "Mosfet", {"d": "d", "g": "g", "s": "s"})))
        x = np.array([1.2, 1.0, 0.1])
        system = assemble(circuit, unknowns=x)
        residual = system.to_dense() @ x - system.rhs

        mosfet = circuit.find_device("M1")
        op = mosfet.evaluate(vgs=0.9, vds=1.1)
        d, g, s = (circuit.node_index(n) for n in ("d", "g", "s"))
        assert residual[d] == pytest.approx(op.ids + GMIN_SIEMENS * 1.1, rel=1e-9)
        assert residual[s] == pytest.approx(-residual[d], rel=1e-9)
        assert residual[g] == pytest.approx(0.0, abs=1e-15)
