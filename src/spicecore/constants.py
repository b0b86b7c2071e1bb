# --- src/spicecore/constants.py ---
import logging

logger = logging.getLogger(__name__)

# --- Node Naming ---

#: Node names (compared case-insensitively) that denote the reference node.
GROUND_NODE_NAMES = frozenset({"0", "gnd"})

#: Unknown index used for the reference node. Stamps addressed to it are dropped.
GROUND_INDEX: int = -1

# --- Numerical Constants for Simulation ---

#: Conductance used to represent an ideal short (R=0) in the MNA matrix.
#: Value: 1e12 Siemens (equivalent to 1 micro-ohm).
LARGE_CONDUCTANCE_SIEMENS: float = 1.0e12

#: Minimum conductance stamped across every semiconductor junction and
#: MOSFET channel so that a device in cutoff never leaves its nodes floating.
GMIN_SIEMENS: float = 1.0e-12

#: Pivots of the LU factorization smaller than this are treated as zero,
#: i.e. the MNA matrix is reported as singular.
PIVOT_ABS_TOLERANCE: float = 1.0e-18

# --- Physical Constants ---

BOLTZMANN_J_PER_K: float = 1.380649e-23
ELEMENTARY_CHARGE_C: float = 1.602176634e-19
NOMINAL_TEMPERATURE_K: float = 300.15

#: kT/q at the nominal temperature, approximately 25.86 mV.
THERMAL_VOLTAGE_V: float = BOLTZMANN_J_PER_K * NOMINAL_TEMPERATURE_K / ELEMENTARY_CHARGE_C

#: Diode exponent arguments (V / (n*Vt)) above this value are linearly
#: continued instead of evaluated, which keeps exp() finite on wild guesses.
DIODE_MAX_EXPONENT: float = 40.0

# --- Default Solver Settings ---

DEFAULT_RELTOL: float = 1.0e-3
DEFAULT_VNTOL_V: float = 1.0e-6
DEFAULT_ABSTOL_A: float = 1.0e-9
DEFAULT_MAX_NEWTON_ITERATIONS: int = 100
DEFAULT_MAX_VOLTAGE_STEP_V: float = 1.0
DEFAULT_PROGRESS_INTERVAL: int = 100

logger.debug("Defined core constants: GMIN_SIEMENS, LARGE_CONDUCTANCE_SIEMENS, THERMAL_VOLTAGE_V")
