# tests/test_analyses.py

"""
End-to-end tests of the analysis drivers: operating point, DC sweep and
transient, including failure reporting, probes, progress and cancellation.
"""

import math
from pathlib import Path

import numpy as np
import pytest

from spicecore import (
    CancellationToken, CircuitBuilder, DcSweepAnalysis, IssueKind, NetlistLoader, OpAnalysis, ParsedModel,
    SimulationRunError, SolverOptions, TranAnalysis, parse_analysis_config,
    run_dc_op, run_dc_sweep, run_simulation, run_transient,
)
from spicecore.simulation import NewtonRaphsonSolver, SingularMatrixError

from conftest import device, netlist

N1 = ParsedModel(name="n1", model_type="nmos",
                 parameters={"vth0": 0.5, "kp": 100e-6, "w": 1e-6, "l": 1e-6, "lambda": 0.0})
P1 = ParsedModel(name="p1", model_type="pmos",
                 parameters={"vth0": -0.5, "kp": 100e-6, "w": 1e-6, "l": 1e-6, "lambda": 0.0})


@pytest.fixture
def floating_cap(builder: CircuitBuilder):
    """A current source charging a capacitor with no DC path to ground."""
    return builder.build(netlist(
        device("I1", "CurrentSource", {"p": "0", "n": "a"}, dc="1 mA"),
        device("C1", "Capacitor", {"p1": "a", "p2": "0"}, capacitance="1 uF"),
        title="floating_cap",
    ))


class TestOperatingPoint:

    def test_single_source(self, builder: CircuitBuilder):
        """VERIFIES: A lone voltage source sets its node and carries no current."""
        circuit = builder.build(netlist(device("V1", "VoltageSource", {"p": "vdd", "n": "0"}, dc="3.3 V")))
        result = run_dc_op(circuit)
        assert result.converged
        assert result.op_point["V(vdd)"] == pytest.approx(3.3)
        assert result.op_point["I(V1)"] == pytest.approx(0.0, abs=1e-12)

    def test_divider(self, divider_circuit):
        """VERIFIES: Two equal resistors halve the source voltage."""
        result = run_dc_op(divider_circuit)
        assert result.converged
        assert result.iterations == 2
        assert result.op_point["V(out)"] == pytest.approx(0.9)
        assert result.op_point["I(V1)"] == pytest.approx(-0.9e-3)
        assert result.waveform.signals == ()
        assert result.issues == ()
        assert result.validation_issues == ()
        assert result.elapsed >= 0.0

    def test_empty_netlist(self):
        """VERIFIES: A netlist with no devices converges with an empty operating point."""
        result = run_dc_op(netlist())
        assert result.converged
        assert result.iterations == 0
        assert result.op_point == {}

    def test_default_analysis_is_op(self, divider_circuit):
        """VERIFIES: run_simulation without a configuration computes the operating point."""
        result = run_simulation(divider_circuit)
        assert isinstance(result.analysis, OpAnalysis)
        assert result.op_point == run_dc_op(divider_circuit).op_point

    def test_repeatable(self, diode_circuit):
        """VERIFIES: Running the same analysis twice gives identical results."""
        first = run_dc_op(diode_circuit)
        second = run_dc_op(diode_circuit)
        assert first.op_point == second.op_point
        assert first.iterations == second.iterations

    def test_diode_forward_drop(self, diode_circuit):
        """VERIFIES: A forward-biased diode settles between 0.6 and 0.8 V."""
        result = run_dc_op(diode_circuit)
        assert result.converged
        v_a = result.op_point["V(a)"]
        assert 0.6 < v_a < 0.8
        assert -result.op_point["I(V1)"] == pytest.approx((5.0 - v_a) / 1000.0, rel=1e-6)

    def test_nmos_common_source(self, builder: CircuitBuilder):
        """VERIFIES: A saturated NMOS sinks 0.5*beta*Vov^2 through its drain resistor."""
        circuit = builder.build(netlist(
            device("VDD", "VoltageSource", {"p": "vdd", "n": "0"}, dc=1.8),
            device("VG", "VoltageSource", {"p": "g", "n": "0"}, dc=1.5),
            device("RD", "Resistor", {"p1": "vdd", "p2": "d"}, resistance="1 kohm"),
            device("M1", "Mosfet", {"d": "d", "g": "g", "s": "0"}, model="n1"),
            models=(N1,),
        ))
        result = run_dc_op(circuit)
        assert result.converged
        v_d = result.op_point["V(d)"]
        assert v_d == pytest.approx(1.75, abs=1e-5)
        assert circuit.find_device("M1").evaluate(1.5, v_d).region == "saturation"

    def test_pmos_pull_up(self, builder: CircuitBuilder):
        """VERIFIES: A PMOS with grounded gate operates in its linear region."""
        circuit = builder.build(netlist(
            device("VDD", "VoltageSource", {"p": "vdd", "n": "0"}, dc=1.8),
            device("MP", "Mosfet", {"d": "out", "g": "0", "s": "vdd"}, model="p1"),
            device("RL", "Resistor", {"p1": "out", "p2": "0"}, resistance="10 kohm"),
            models=(P1,),
        ))
        result = run_dc_op(circuit)
        assert result.converged
        v_out = result.op_point["V(out)"]
        # beta*(1.3*vsd - vsd^2/2) = (1.8 - vsd)/10k  =>  vsd = 1.0
        assert v_out == pytest.approx(0.8, abs=1e-5)
        op = circuit.find_device("MP").evaluate(0.0 - 1.8, v_out - 1.8)
        assert op.region == "linear"
        assert op.ids == pytest.approx(-v_out / 1e4, rel=1e-3)

    def test_probes_filter_op_point(self, divider_circuit):
        """VERIFIES: Probes are case-insensitive and a bare node name means its voltage."""
        result = run_dc_op(divider_circuit, config=OpAnalysis(probes=("OUT", "i(v1)")))
        assert result.converged
        assert set(result.op_point) == {"V(out)", "I(V1)"}

    def test_unknown_probe(self, divider_circuit):
        """VERIFIES: An unknown probe name is a configuration issue."""
        result = run_dc_op(divider_circuit, config=OpAnalysis(probes=("nowhere",)))
        assert not result.converged
        assert len(result.issues_of(IssueKind.CONFIGURATION)) == 1
        assert "nowhere" in result.issues[0].message

    def test_singular_operating_point(self, floating_cap):
        """VERIFIES: A floating node gives a singular-matrix issue, no operating point and a topology warning."""
        result = run_dc_op(floating_cap)
        assert not result.converged
        assert result.op_point is None
        singular = result.issues_of(IssueKind.SINGULAR_MATRIX)
        assert len(singular) == 1
        assert "Singular Matrix Encountered" in singular[0].report
        assert [issue.code for issue in result.validation_issues] == ["NODE_CONN_FLOATING"]
        assert result.validation_issues[0].node_name == "a"

    def test_non_convergence_keeps_best_effort(self, diode_circuit):
        """VERIFIES: Running out of iterations reports the last iterate with a non-convergence issue."""
        result = run_dc_op(diode_circuit, options=SolverOptions(max_iterations=3))
        assert not result.converged
        assert result.iterations == 3
        assert len(result.issues_of(IssueKind.NON_CONVERGENCE)) == 1
        assert set(result.op_point) == {"V(vin)", "V(a)", "I(V1)"}


class TestNetlistInput:

    def test_build_error_is_reported(self):
        """VERIFIES: A netlist that cannot be built yields a configuration issue, not an exception."""
        result = run_dc_op(netlist(device("R1", "Resistor", {"p1": "a"}, resistance=1)))
        assert not result.converged
        issues = result.issues_of(IssueKind.CONFIGURATION)
        assert len(issues) == 1
        assert "Missing connection" in issues[0].report

    def test_netlist_options_are_used(self):
        """VERIFIES: The netlist's options block configures the solver unless options are given."""
        parsed = netlist(
            device("V1", "VoltageSource", {"p": "vin", "n": "0"}, dc=5.0),
            device("R1", "Resistor", {"p1": "vin", "p2": "a"}, resistance=1000.0),
            device("D1", "Diode", {"anode": "a", "cathode": "0"}),
            options={"max_iterations": 1},
        )
        limited = run_dc_op(parsed)
        assert not limited.converged
        assert limited.iterations == 1
        assert run_dc_op(parsed, options=SolverOptions()).converged

    def test_invalid_netlist_options(self):
        """VERIFIES: A bad options block is a configuration issue."""
        parsed = netlist(device("V1", "VoltageSource", {"p": "a", "n": "0"}, dc=1), options={"bogus": 1})
        result = run_dc_op(parsed)
        assert not result.converged
        assert "Invalid solver options" in result.issues_of(IssueKind.CONFIGURATION)[0].message

    def test_wrong_input_type(self):
        """VERIFIES: Inputs that are neither a Circuit nor a ParsedNetlist are internal errors."""
        with pytest.raises(SimulationRunError):
            run_simulation("divider.yaml")

    def test_yaml_netlist_runs_all_analyses(self, netlist_dir: Path):
        """VERIFIES: Every analysis declared in a loaded netlist runs on the loaded circuit."""
        parsed = NetlistLoader().load(netlist_dir / "divider.yaml")
        results = [run_simulation(parsed, parse_analysis_config(raw)) for raw in parsed.analyses]
        assert results[0].op_point["V(out)"] == pytest.approx(0.9)
        out = results[1].signal("V(out)")
        assert len(out) == 19
        np.testing.assert_allclose(out.values, out.x / 2, atol=1e-9)


class TestDcSweep:

    def test_divider_sweep(self, divider_circuit):
        """VERIFIES: One point per step, inclusive of stop, seeded by the previous point."""
        result = run_dc_sweep(divider_circuit, DcSweepAnalysis("V1", 0.0, 1.8, 0.1))
        assert result.converged
        assert result.op_point is None
        assert result.waveform.x_unit == "V"
        out = result.signal("v(out)")
        assert len(out) == 19
        np.testing.assert_allclose(out.x, np.arange(19) * 0.1, atol=1e-12)
        np.testing.assert_allclose(out.values, out.x / 2, atol=1e-9)
        assert out.is_final
        assert result.signal("I(V1)").unit == "A"

    def test_descending_sweep_recorded_ascending(self, divider_circuit):
        """VERIFIES: A downward sweep is stored with non-decreasing x."""
        result = run_dc_sweep(divider_circuit, DcSweepAnalysis("V1", 1.0, 0.0, -0.25))
        out = result.signal("V(out)")
        np.testing.assert_allclose(out.x, [0.0, 0.25, 0.5, 0.75, 1.0])
        np.testing.assert_allclose(out.values, [0.0, 0.125, 0.25, 0.375, 0.5])

    def test_current_source_sweep(self, builder: CircuitBuilder):
        """VERIFIES: Sweeping a current source records amperes on the x axis."""
        circuit = builder.build(netlist(
            device("I1", "CurrentSource", {"p": "0", "n": "a"}, dc=0),
            device("R1", "Resistor", {"p1": "a", "p2": "0"}, resistance=1000),
        ))
        result = run_dc_sweep(circuit, DcSweepAnalysis("i1", 0.0, 1e-3, 0.5e-3))
        assert result.waveform.x_unit == "A"
        np.testing.assert_allclose(result.signal("V(a)").values, [0.0, 0.5, 1.0])

    def test_diode_sweep_is_monotonic(self, diode_circuit):
        """VERIFIES: The diode voltage rises monotonically with the source."""
        result = run_dc_sweep(diode_circuit, DcSweepAnalysis("V1", 0.0, 5.0, 0.5))
        assert result.converged
        assert np.all(np.diff(result.signal("V(a)").values) > 0)

    def test_high_voltage_diode_sweep(self, builder: CircuitBuilder):
        """VERIFIES: A sweep starting far above the junction drop converges at every point."""
        circuit = builder.build(netlist(
            device("V1", "VoltageSource", {"p": "vin", "n": "0"}, dc=0),
            device("R1", "Resistor", {"p1": "vin", "p2": "a"}, resistance=10.0),
            device("D1", "Diode", {"anode": "a", "cathode": "0"}),
        ))
        result = run_dc_sweep(circuit, DcSweepAnalysis("V1", 200.0, 0.0, -50.0))
        assert result.converged
        assert result.issues == ()
        v_a = result.signal("V(a)")
        np.testing.assert_allclose(v_a.x, [0.0, 50.0, 100.0, 150.0, 200.0])
        assert v_a.values[0] == pytest.approx(0.0, abs=1e-6)
        assert np.all(np.diff(v_a.values) > 0)
        assert v_a.values[-1] < 1.0

    @pytest.mark.parametrize("source", ["V9", "R1"])
    def test_invalid_sweep_source(self, divider_circuit, source):
        """VERIFIES: Sweeping a missing device or a non-source is a configuration issue."""
        result = run_dc_sweep(divider_circuit, DcSweepAnalysis(source, 0.0, 1.0, 0.5))
        assert not result.converged
        assert len(result.issues_of(IssueKind.CONFIGURATION)) == 1
        assert result.waveform.signals == ()

    def test_sweep_probes(self, divider_circuit):
        """VERIFIES: Probes select the recorded signals."""
        result = run_dc_sweep(divider_circuit, DcSweepAnalysis("V1", 0.0, 1.0, 0.5, probes=("out",)))
        assert result.waveform.names == ["V(out)"]


class TestTransient:

    def test_rc_step_response(self, rc_lowpass):
        """VERIFIES: Backward Euler reproduces v_k = 1 - (1 + h/RC)^-(k - 10) after the step at 0.105 ms."""
        h, rc = 1e-5, 1e-3
        result = run_transient(rc_lowpass, TranAnalysis(step=h, stop=2e-3))
        assert result.converged
        assert result.waveform.x_unit == "s"
        out = result.signal("V(out)")
        assert len(out) == 201
        assert np.all(np.diff(out.x) >= 0)
        assert out.x[0] == 0.0
        assert out.x[-1] == pytest.approx(2e-3)

        for t, v in out.data:
            k = round(t / h)
            expected = 0.0 if k <= 10 else 1.0 - (1.0 + h / rc) ** -(k - 10)
            assert v == pytest.approx(expected, abs=1e-9)

        analytic = 1.0 - math.exp(-(2e-3 - 0.105e-3) / rc)
        assert out.values[-1] == pytest.approx(analytic, abs=0.01)

    def test_op_point_is_initial_solution(self, rc_lowpass):
        """VERIFIES: The transient result's operating point is the t=0 solution."""
        result = run_transient(rc_lowpass, TranAnalysis(step=1e-5, stop=1e-4))
        assert result.op_point == {"V(in)": 0.0, "V(out)": 0.0, "I(V1)": 0.0}

    def test_rl_current_ramp(self, builder: CircuitBuilder):
        """VERIFIES: The inductor current follows i_k = (1 + (L/h)*i_{k-1}) / (R + L/h)."""
        circuit = builder.build(netlist(
            device("V1", "VoltageSource", {"p": "in", "n": "0"},
                   transient={"kind": "pulse", "v1": 0, "v2": 1, "delay": "0.5 ms"}),
            device("R1", "Resistor", {"p1": "in", "p2": "a"}, resistance=1.0),
            device("L1", "Inductor", {"p1": "a", "p2": "0"}, inductance="1 H"),
        ))
        result = run_transient(circuit, TranAnalysis(step=1e-3, stop=5e-3))
        current = result.signal("I(L1)").values
        expected = [0.0]
        for _ in range(5):
            expected.append((1.0 + 1000.0 * expected[-1]) / 1001.0)
        np.testing.assert_allclose(current, expected, rtol=1e-9, atol=1e-15)

    def test_record_start_and_short_last_step(self, rc_lowpass):
        """VERIFIES: Only t >= start is recorded and the final step ends exactly at stop."""
        late = run_transient(rc_lowpass, TranAnalysis(step=1e-5, stop=1e-4, start=5e-5))
        x = late.signal("V(out)").x
        assert len(x) == 6
        assert x[0] == pytest.approx(5e-5)

        uneven = run_transient(rc_lowpass, TranAnalysis(step=3e-5, stop=1e-4))
        np.testing.assert_allclose(uneven.signal("V(out)").x, [0.0, 3e-5, 6e-5, 9e-5, 1e-4])

    def test_singular_start_uses_zero_initial_conditions(self, floating_cap):
        """VERIFIES: If the t=0 solve is singular, integration starts from zero and charges the capacitor."""
        result = run_transient(floating_cap, TranAnalysis(step=1e-5, stop=1e-4))
        assert not result.converged
        assert result.op_point is None
        singular = result.issues_of(IssueKind.SINGULAR_MATRIX)
        assert len(singular) == 1
        assert singular[0].x == 0.0
        v_a = result.signal("V(a)")
        assert len(v_a) == 10
        # dv = I*h/C = 0.01 V per step
        np.testing.assert_allclose(v_a.values, np.arange(1, 11) * 0.01, rtol=1e-9)

    def test_unconverged_steps_are_recorded(self, builder: CircuitBuilder):
        """VERIFIES: A step that runs out of iterations is reported at its time, still recorded, and later steps run."""
        circuit = builder.build(netlist(
            device("V1", "VoltageSource", {"p": "vin", "n": "0"},
                   transient={"kind": "pulse", "v1": 0, "v2": 5, "delay": "0.5 ms"}),
            device("R1", "Resistor", {"p1": "vin", "p2": "a"}, resistance=1000.0),
            device("D1", "Diode", {"anode": "a", "cathode": "0"}),
        ))
        result = run_transient(circuit, TranAnalysis(step=1e-3, stop=15e-3), options=SolverOptions(max_iterations=2))
        assert not result.converged
        assert result.issues_of(IssueKind.SINGULAR_MATRIX) == []

        unconverged = result.issues_of(IssueKind.NON_CONVERGENCE)
        assert unconverged[0].x == pytest.approx(1e-3)
        assert len(unconverged) < 15
        assert unconverged[-1].x < 14.5e-3

        v_a = result.signal("V(a)")
        assert len(v_a) == 16
        assert v_a.values[0] == 0.0
        # The first step is cut short by the iteration cap well above the final drop.
        assert v_a.values[1] > 0.9
        assert 0.6 < v_a.values[-1] < 0.8

    def test_singular_step_is_skipped(self, builder: CircuitBuilder, monkeypatch):
        """VERIFIES: A singular step is reported with no point, and the next step integrates across the gap."""
        h, rc = 1e-5, 1e-3
        circuit = builder.build(netlist(
            device("V1", "VoltageSource", {"p": "in", "n": "0"},
                   transient={"kind": "pulse", "v1": 0, "v2": 1, "delay": "5 us"}),
            device("R1", "Resistor", {"p1": "in", "p2": "out"}, resistance="1 kohm"),
            device("C1", "Capacitor", {"p1": "out", "p2": "0"}, capacitance="1 uF"),
        ))
        solve = NewtonRaphsonSolver.solve
        steps = []

        def solve_failing_at_third_step(self, initial_guess=None, context=None, companion_states=None):
            if context is not None and context.time is not None and abs(context.time - 3 * h) < 1e-12:
                raise SingularMatrixError(details="Pivot vanished", point=context.time)
            if context is not None and context.step is not None:
                steps.append(context.step)
            return solve(self, initial_guess, context, companion_states)

        monkeypatch.setattr(NewtonRaphsonSolver, "solve", solve_failing_at_third_step)
        result = run_transient(circuit, TranAnalysis(step=h, stop=10 * h))

        assert not result.converged
        singular = result.issues_of(IssueKind.SINGULAR_MATRIX)
        assert len(singular) == 1
        assert singular[0].x == pytest.approx(3 * h)
        assert "Singular Matrix Encountered" in singular[0].report

        out = result.signal("V(out)")
        np.testing.assert_allclose(out.x, np.array([0, 1, 2, 4, 5, 6, 7, 8, 9, 10]) * h)
        np.testing.assert_allclose(steps, np.array([1, 1, 2, 1, 1, 1, 1, 1, 1]) * h)

        expected, v, previous_time = [0.0], 0.0, 0.0
        for t in out.x[1:]:
            a = (t - previous_time) / rc
            v = (v + a) / (1.0 + a)
            expected.append(v)
            previous_time = t
        np.testing.assert_allclose(out.values, expected, rtol=1e-9, atol=1e-15)

    def test_cmos_inverter_from_yaml(self, netlist_dir: Path):
        """VERIFIES: The inverter output falls from VDD to ground as its input ramps up."""
        parsed = NetlistLoader().load(netlist_dir / "inverter.yaml")
        result = run_simulation(parsed, parse_analysis_config(parsed.analyses[0]))
        assert result.converged
        out = result.signal("V(out)")
        assert len(out) == 201
        assert out.values[0] == pytest.approx(1.8, abs=1e-3)
        assert out.values[-1] < 0.05


class TestProgressAndCancellation:

    def test_progress_fractions(self, rc_lowpass):
        """VERIFIES: Progress is reported every progress_interval steps with increasing fractions up to 1."""
        fractions = []
        run_transient(rc_lowpass, TranAnalysis(step=1e-5, stop=2e-3),
                      on_progress=fractions.append, options=SolverOptions(progress_interval=10))
        assert len(fractions) == 20
        assert fractions == sorted(fractions)
        assert fractions[0] == pytest.approx(0.05)
        assert fractions[-1] == 1.0

    def test_cancel_from_progress_callback(self, rc_lowpass):
        """VERIFIES: Cancelling stops the run before the next step and keeps the partial waveform."""
        token = CancellationToken()
        result = run_transient(rc_lowpass, TranAnalysis(step=1e-5, stop=2e-3),
                               on_progress=lambda fraction: token.cancel(), cancel_token=token,
                               options=SolverOptions(progress_interval=10))
        assert result.cancelled
        out = result.signal("V(out)")
        assert out.is_final
        assert len(out) == 11
        assert out.x[-1] == pytest.approx(1e-4)

    def test_pre_cancelled_sweep(self, divider_circuit):
        """VERIFIES: A token cancelled before the run yields an empty, cancelled sweep."""
        token = CancellationToken()
        token.cancel()
        result = run_dc_sweep(divider_circuit, DcSweepAnalysis("V1", 0.0, 1.0, 0.1), cancel_token=token)
        assert result.cancelled
        assert all(len(signal) == 0 for signal in result.waveform.signals)

    def test_uncancelled_run(self, divider_circuit):
        """VERIFIES: An untouched token does not stop the run."""
        result = run_dc_sweep(divider_circuit, DcSweepAnalysis("V1", 0.0, 1.0, 0.1), cancel_token=CancellationToken())
        assert not result.cancelled
        assert len(result.signal("V(out)")) == 11
