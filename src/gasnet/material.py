import numpy as np

from .constants import PhysicalConstants
from .species import SpeciesTable, default_table


class MaterialService:
    """
    Pure Functional Service for Gas Mixture Properties.
    Mixture quantities are mass-fraction weighted over the species table.
    """

    def __init__(self, table: SpeciesTable = None):
        self.table = table if table is not None else default_table()
        self.R_i = self.table.gas_constant
        self.M_i = self.table.molar_mass
        self.n_species = self.table.n_species

    # --- Composition ---------------------------------------------------

    def mole_fractions(self, x) -> np.ndarray:
        """y = (x/M)/sum(x/M)"""
        n = np.asarray(x, dtype=float) / self.M_i
        total = np.sum(n)
        if total < PhysicalConstants.TOLERANCE_SMALL:
            return np.zeros_like(n)
        return n / total

    def mass_fractions(self, y) -> np.ndarray:
        """x = (y*M)/sum(y*M)"""
        m = np.asarray(y, dtype=float) * self.M_i
        total = np.sum(m)
        if total < PhysicalConstants.TOLERANCE_SMALL:
            return np.zeros_like(m)
        return m / total

    def gas_constant(self, x) -> float:
        return float(np.dot(x, self.R_i))

    def molar_mass(self, x) -> float:
        return 1.0 / float(np.dot(x, 1.0 / self.M_i))

    # --- Thermodynamics ------------------------------------------------

    def species_enthalpy(self, T) -> np.ndarray:
        return self.table.species_values('h', T)

    def enthalpy(self, T, x) -> float:
        return float(np.dot(x, self.table.species_values('h', T)))

    def cp(self, T, x) -> float:
        return float(np.dot(x, self.table.species_values('cp', T)))

    def cv(self, T, x) -> float:
        return self.cp(T, x) - self.gas_constant(x)

    def gamma(self, T, x) -> float:
        cp = self.cp(T, x)
        return cp / (cp - self.gas_constant(x))

    def entropy(self, T, p, x) -> float:
        """
        Mixture entropy s(T, p, x) in J/(kg*K):
        sum x_i s_i(T) - R ln(p/p_ref) - sum x_i R_i ln(y_i)
        """
        x = np.asarray(x, dtype=float)
        s0 = float(np.dot(x, self.table.species_values('s', T)))
        R = self.gas_constant(x)
        y = self.mole_fractions(x)
        present = y > PhysicalConstants.TOLERANCE_SMALL
        mixing = float(np.sum(x[present] * self.R_i[present] * np.log(y[present])))
        return s0 - R * np.log(p / PhysicalConstants.ENTROPY_REFERENCE_PRESSURE) - mixing

    # --- Transport -----------------------------------------------------

    def viscosity(self, T, x) -> float:
        return float(np.dot(x, self.table.species_values('mu', T)))

    def conductivity(self, T, x) -> float:
        return float(np.dot(x, self.table.species_values('k', T)))

    def prandtl(self, T, x) -> float:
        return self.viscosity(T, x) * self.cp(T, x) / self.conductivity(T, x)

    # --- Equation of state ---------------------------------------------

    def density(self, p, T, x) -> float:
        """Ideal gas mixture: rho = p/(R T)"""
        return p / (self.gas_constant(x) * T)

    def density_derivatives(self, p, T, x):
        """
        Partial derivatives of the mixture density.

        Returns:
            drho_dp (float), drho_dT (float), drho_dx (np.array, per species)
        """
        R = self.gas_constant(x)
        rho = p / (R * T)
        return rho / p, -rho / T, -rho * self.R_i / R

    def speed_of_sound(self, T, x) -> float:
        return float(np.sqrt(self.gamma(T, x) * self.gas_constant(x) * T))

    def partial_pressures(self, p, x) -> np.ndarray:
        return p * self.mole_fractions(x)

    def saturation_pressure(self, T) -> np.ndarray:
        """Per-species saturation pressure (Pa), nearest extrapolation off-grid."""
        return np.exp(self.table.species_values('log_psat', T, extrapolation='nearest'))

    def heat_of_vaporization(self, T) -> np.ndarray:
        return self.table.species_values('h_vap', T)
