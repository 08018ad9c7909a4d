"""
BasicCompressor: map-based turbo compressor between gas ports A (inlet) and
B (outlet), driven through rotational ports R (shaft) and C (case).
"""
import logging

import numpy as np

from .blend import blend
from .component import (NON_NEGATIVE, POSITIVE, ROTATIONAL, UNIT_INTERVAL, GREATER_THAN_ONE,
                        register)
from .constants import PhysicalConstants
from .flow_elements import TwoPortElement

logger = logging.getLogger(__name__)

P_NOM = PhysicalConstants.NOMINAL_PRESSURE
TAU_NOM = PhysicalConstants.NOMINAL_TORQUE


@register('BasicCompressor')
class BasicCompressor(TwoPortElement):
    """
    Pressure ratio from an empirical three-coefficient map.

        phi = mdot sqrt(T_A/T_ref) / (p_A/p_ref) / mdot_rated   (corrected flow)
        n   = omega / sqrt(T_A/T_ref) / omega_rated              (corrected speed)
        psi = phi / n
        PR  = 1 + (PR_rated - 1) * n^a3 * (1 - a1 (psi - 1) - a2 (psi - 1)^3)

    Below linearization_speed the ratio is taken linear in speed so the map
    stays regular at standstill. The outlet entropy follows the polytropic
    efficiency; the shaft torque follows the enthalpy rise and the mechanical
    efficiency.
    """

    def __init__(self, name, rated_pressure_ratio=2.0, rated_mass_flow=0.1, rated_speed=10000.0,
                 map_coefficients=(1.0, 0.5, 2.0), polytropic_efficiency=0.8, mechanical_efficiency=0.95,
                 reference_temperature=PhysicalConstants.DEFAULT_TEMPERATURE,
                 reference_pressure=PhysicalConstants.STANDARD_PRESSURE, linearization_speed=0.05,
                 minimum_speed=1.0, area=PhysicalConstants.DEFAULT_PORT_AREA, material=None):
        super().__init__(name, area, material)
        self.add_port('R', ROTATIONAL)
        self.add_port('C', ROTATIONAL)

        P = self.params
        self.PR_rated = P.declare('rated_pressure_ratio', rated_pressure_ratio, '1', GREATER_THAN_ONE)
        self.mdot_rated = P.declare('rated_mass_flow', rated_mass_flow, 'kg/s', POSITIVE)
        self.omega_rated = P.declare('rated_speed', rated_speed, 'rad/s', POSITIVE)
        coeffs = P.declare('map_coefficients', map_coefficients, '1', NON_NEGATIVE)
        P.require('map_coefficients', np.shape(coeffs) == (3,), "must hold (a1, a2, a3)")
        P.require('map_coefficients', coeffs[0] + coeffs[1] > 0, "a1 + a2 must be > 0")
        self.a1, self.a2, self.a3 = (float(c) for c in coeffs)
        self.eta_p = P.declare('polytropic_efficiency', polytropic_efficiency, '1', UNIT_INTERVAL)
        self.eta_m = P.declare('mechanical_efficiency', mechanical_efficiency, '1', UNIT_INTERVAL)
        self.T_ref = P.declare('reference_temperature', reference_temperature, 'K', POSITIVE)
        self.p_ref = P.declare('reference_pressure', reference_pressure, 'Pa', POSITIVE)
        self.n_lin = P.declare('linearization_speed', linearization_speed, '1', UNIT_INTERVAL)
        self.omega_min = P.declare('minimum_speed', minimum_speed, 'rad/s', POSITIVE)

    def flow_guess(self):
        return self.mdot_rated

    def corrected_flow(self, mdot, inlet) -> float:
        theta = np.sqrt(inlet.T / self.T_ref)
        return mdot * theta / (inlet.p / self.p_ref) / self.mdot_rated

    def corrected_speed(self, omega, inlet) -> float:
        return omega / np.sqrt(inlet.T / self.T_ref) / self.omega_rated

    def _map(self, phi, n) -> float:
        psi = phi / n
        g = n**self.a3 * (1.0 - self.a1 * (psi - 1.0) - self.a2 * (psi - 1.0)**3)
        return 1.0 + (self.PR_rated - 1.0) * g

    def pressure_ratio(self, phi, n) -> float:
        """Map pressure ratio at corrected flow phi and corrected speed n."""
        PR_map = self._map(phi, max(n, self.n_lin))
        if n >= 2.0 * self.n_lin:
            return PR_map
        PR_low = 1.0 + (self._map(phi, self.n_lin) - 1.0) * n / self.n_lin
        return blend(PR_low, PR_map, self.n_lin, 2.0 * self.n_lin, n)

    def shaft_speed(self, view) -> float:
        return float(view.across('R')[0] - view.across('C')[0])

    def power(self, view):
        """Enthalpy rise delivered to the gas, mdot * (h_tot,B - h_tot,A) (W)."""
        mdot = view.flow('A').mdot
        return mdot * (self.total_enthalpy(view.gas('B'), mdot) - self.total_enthalpy(view.gas('A'), mdot))

    def pressure_residual(self, view):
        inlet, outlet = view.gas('A'), view.gas('B')
        phi = self.corrected_flow(view.flow('A').mdot, inlet)
        n = self.corrected_speed(self.shaft_speed(view), inlet)
        return (outlet.p - self.pressure_ratio(phi, n) * inlet.p) / P_NOM

    def thermal_residual(self, view):
        """Polytropic compression: s_B - s_A = R (1/eta_p - 1) ln(p_B/p_A)."""
        m = self.material
        inlet, outlet = view.gas('A'), view.gas('B')
        R = m.gas_constant(inlet.x)
        ds = m.entropy(outlet.T, outlet.p, outlet.x) - m.entropy(inlet.T, inlet.p, inlet.x)
        return (ds - R * (1.0 / self.eta_p - 1.0) * np.log(outlet.p / inlet.p)) / R

    def shaft_torque(self, view) -> float:
        omega = self.shaft_speed(view)
        omega_eff = blend(self.omega_min, omega, self.omega_min, 2.0 * self.omega_min, omega)
        return self.power(view) / (self.eta_m * omega_eff)

    def equations(self, view):
        _, gas = super().equations(view)
        tau_R, tau_C = view.through('R')[0], view.through('C')[0]
        r_shaft = np.array([(tau_R - self.shaft_torque(view)) / TAU_NOM, (tau_R + tau_C) / TAU_NOM])
        return np.zeros(0), np.concatenate([gas, r_shaft])

    def outputs(self, view):
        inlet, outlet = view.gas('A'), view.gas('B')
        mdot = view.flow('A').mdot
        omega = self.shaft_speed(view)
        power = self.power(view)
        return {
            'mdot': mdot, 'pressure_ratio': outlet.p / inlet.p,
            'corrected_flow': self.corrected_flow(mdot, inlet),
            'corrected_speed': self.corrected_speed(omega, inlet),
            'speed': omega, 'torque': float(view.through('R')[0]),
            'power': power, 'shaft_power': power / self.eta_m,
        }
