from dataclasses import dataclass

@dataclass(frozen=True)
class PhysicalConstants:
    """
    Central repository for physical constants and default model parameters.
    Replaces magic numbers in the codebase.
    """

    # Thermodynamics
    UNIVERSAL_GAS_CONSTANT: float = 8.3144626    # J/(mol*K)
    REFERENCE_TEMPERATURE: float = 298.15        # K (sensible enthalpy zero)
    ENTROPY_REFERENCE_PRESSURE: float = 1.0e5    # Pa (Shomate standard state)
    STANDARD_PRESSURE: float = 101325.0          # Pa (volumetric flow reference)
    STANDARD_TEMPERATURE: float = 273.15         # K
    CRITICAL_TEMPERATURE_H2O: float = 647.096    # K

    # Physical floors
    MIN_PRESSURE: float = 100.0                  # Pa
    MIN_TEMPERATURE: float = 200.0               # K
    MIN_SPECIES_MASS: float = -1e-6              # kg (numerical noise allowance)
    FRACTION_TOLERANCE: float = 1e-6             # Sum of mass fractions

    # Defaults
    DEFAULT_PRESSURE: float = 101325.0           # Pa
    DEFAULT_TEMPERATURE: float = 293.15          # K
    DEFAULT_COMPOSITION: tuple = (0.767, 0.233, 0.0, 0.0)  # Dry air by mass
    DEFAULT_PORT_AREA: float = 0.01              # m^2

    # Numerical / Solver
    TOLERANCE_SMALL: float = 1e-9                # Small number for division safety
    MIN_CONDUCTANCE: float = 1e-10               # kg/s (Port convection floor)
    LAMINAR_FLOW_FRACTION: float = 1e-3          # Laminar floor as fraction of nominal flow
    CHOKE_TOLERANCE: float = 0.02                # Relative band below sonic limit

    # Residual normalisation
    NOMINAL_PRESSURE: float = 1.0e5              # Pa
    NOMINAL_TEMPERATURE: float = 300.0           # K
    NOMINAL_MASS_FLOW: float = 0.01              # kg/s
    NOMINAL_ENTHALPY: float = 1.0e4              # J/kg
    NOMINAL_HEAT_FLOW: float = 100.0             # W
    NOMINAL_VELOCITY: float = 1.0                # m/s
    NOMINAL_FORCE: float = 100.0                 # N
    NOMINAL_TORQUE: float = 1.0                  # N*m
