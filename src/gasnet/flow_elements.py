"""
Algebraic two-port flow elements: FlowResistance and LocalRestriction.

Storage-free elements share the same conservation block: mass, species and
energy flows pass through unchanged and the composition is equal at both
ports. Each element adds its own pressure law and a thermal relation.
"""
import logging
from abc import abstractmethod

import numpy as np

from .blend import blend, limit_magnitude
from .component import GAS, NON_NEGATIVE, POSITIVE, UNIT_INTERVAL, Component, Signal, register
from .constants import PhysicalConstants
from .correlations import sonic_mass_flow
from .ports import kinetic_energy

logger = logging.getLogger(__name__)

P_NOM = PhysicalConstants.NOMINAL_PRESSURE
M_NOM = PhysicalConstants.NOMINAL_MASS_FLOW
H_NOM = PhysicalConstants.NOMINAL_ENTHALPY
E_NOM = M_NOM * H_NOM


class TwoPortElement(Component):
    """
    Storage-free gas element between ports A and B.

    Residual layout: [pressure law, thermal relation, mass, energy,
    species flows (N), composition equality (N)].
    """

    def __init__(self, name, area=PhysicalConstants.DEFAULT_PORT_AREA, material=None):
        super().__init__(name, material)
        self.add_port('A', GAS)
        self.add_port('B', GAS)
        self.area = self.params.declare('area', area, 'm^2', POSITIVE)

    def total_enthalpy(self, state, mdot) -> float:
        m = self.material
        rho = m.density(state.p, state.T, state.x)
        return m.enthalpy(state.T, state.x) + kinetic_energy(mdot, rho, self.area)

    @abstractmethod
    def pressure_residual(self, view) -> float:
        pass

    def flow_guess(self):
        """Expected mass flow from A to B, or None."""
        return None

    def guess_through(self, port_name):
        mdot = self.flow_guess()
        if mdot is None or port_name not in ('A', 'B'):
            return None
        sign = 1.0 if port_name == 'A' else -1.0
        return np.concatenate([[sign * mdot, 0.0], np.zeros(self.material.n_species)])

    def thermal_residual(self, view) -> float:
        """Adiabatic: equal total enthalpy at both ports."""
        mdot = view.flow('A').mdot
        h_A = self.total_enthalpy(view.gas('A'), mdot)
        h_B = self.total_enthalpy(view.gas('B'), mdot)
        return (h_A - h_B) / H_NOM

    def power(self, view) -> float:
        """Work delivered to the gas (W)."""
        return 0.0

    def conservation_residuals(self, view):
        flow_A, flow_B = view.flow('A'), view.flow('B')
        a, b = view.gas('A'), view.gas('B')
        return np.concatenate([
            [(flow_A.mdot + flow_B.mdot) / M_NOM,
             (flow_A.Phi + flow_B.Phi + self.power(view)) / E_NOM],
            (flow_A.mdot_i + flow_B.mdot_i) / M_NOM,
            a.x - b.x,
        ])

    def equations(self, view):
        head = [self.pressure_residual(view), self.thermal_residual(view)]
        return np.zeros(0), np.concatenate([head, self.conservation_residuals(view)])

    def outputs(self, view):
        a, b = view.gas('A'), view.gas('B')
        return {'mdot': view.flow('A').mdot, 'dp': a.p - b.p, 'power': self.power(view)}


@register('FlowResistance')
class FlowResistance(TwoPortElement):
    """
    Quadratic pressure loss fitted to one nominal operating point.

        dp = K * mdot * sqrt(mdot^2 + mdot_lam^2) * (rho_nom / rho_avg)
        K  = dp_nom / (mdot_nom * sqrt(mdot_nom^2 + mdot_lam^2))

    The density correction is skipped when nominal_density is 0. A command
    signal c divides K, floored at leakage_fraction.
    """

    def __init__(self, name, nominal_pressure_drop=1000.0, nominal_mass_flow=0.1, nominal_density=0.0,
                 area=PhysicalConstants.DEFAULT_PORT_AREA, command=None, leakage_fraction=1e-6,
                 material=None):
        super().__init__(name, area, material)
        P = self.params
        self.dp_nom = P.declare('nominal_pressure_drop', nominal_pressure_drop, 'Pa', POSITIVE)
        self.mdot_nom = P.declare('nominal_mass_flow', nominal_mass_flow, 'kg/s', POSITIVE)
        self.rho_nom = P.declare('nominal_density', nominal_density, 'kg/m^3', NON_NEGATIVE)
        self.leakage = P.declare('leakage_fraction', leakage_fraction, '1', UNIT_INTERVAL)
        self.mdot_lam = PhysicalConstants.LAMINAR_FLOW_FRACTION * self.mdot_nom
        self.K = self.dp_nom / (self.mdot_nom * np.sqrt(self.mdot_nom**2 + self.mdot_lam**2))
        self.command = Signal(command) if command is not None else None

    def coefficient(self, t) -> float:
        if self.command is None:
            return self.K
        return self.K / max(float(self.command(t)), self.leakage)

    def flow_guess(self):
        return self.mdot_nom

    def pressure_drop(self, mdot, t, rho_avg=None) -> float:
        dp = self.coefficient(t) * mdot * np.sqrt(mdot * mdot + self.mdot_lam**2)
        if self.rho_nom > 0:
            dp *= self.rho_nom / rho_avg
        return float(dp)

    def pressure_residual(self, view):
        m = self.material
        a, b = view.gas('A'), view.gas('B')
        rho_avg = 0.5 * (m.density(a.p, a.T, a.x) + m.density(b.p, b.T, b.x))
        return (a.p - b.p - self.pressure_drop(view.flow('A').mdot, view.t, rho_avg)) / P_NOM


@register('LocalRestriction')
class LocalRestriction(TwoPortElement):
    """
    Orifice or valve of (possibly commanded) area between two ports.

    Turbulent loss coefficients per direction come from the contraction
    area ratio r = Cd*A_R/A_port and the port density ratio; near zero
    pressure difference the laminar contraction coefficient 1 - r^2 takes
    over. The resulting flow is saturated at the sonic flow through the
    throat from the upstream stagnation state.
    """

    def __init__(self, name, restriction_area=1e-4, port_area=PhysicalConstants.DEFAULT_PORT_AREA,
                 discharge_coefficient=0.64, max_area=None, leakage_area=1e-10,
                 laminar_pressure_ratio=0.999, choke_tolerance=PhysicalConstants.CHOKE_TOLERANCE,
                 material=None):
        super().__init__(name, port_area, material)
        P = self.params
        self.Cd = P.declare('discharge_coefficient', discharge_coefficient, '1', UNIT_INTERVAL)
        self.leakage_area = P.declare('leakage_area', leakage_area, 'm^2', POSITIVE)
        self.B_lam = P.declare('laminar_pressure_ratio', laminar_pressure_ratio, '1', UNIT_INTERVAL)
        P.require('laminar_pressure_ratio', self.B_lam < 1.0, "must be < 1")
        self.choke_tol = P.declare('choke_tolerance', choke_tolerance, '1', UNIT_INTERVAL)

        self.restriction_area = Signal(restriction_area)
        if self.restriction_area.is_constant:
            area = P.declare('restriction_area', restriction_area, 'm^2', POSITIVE)
            max_area = area if max_area is None else max_area
        P.require('max_area', max_area is not None, "is required for a commanded restriction area")
        self.max_area = P.declare('max_area', max_area, 'm^2', POSITIVE)
        P.require('max_area', self.max_area > self.leakage_area, "must exceed leakage_area")
        P.require('max_area', self.Cd * self.max_area < self.area,
                  "times the discharge coefficient must be smaller than the port area")

    def area_at(self, t) -> float:
        return float(np.clip(self.restriction_area(t), self.leakage_area, self.max_area))

    def sonic_limit(self, upstream, t) -> float:
        m = self.material
        return float(sonic_mass_flow(self.Cd * self.area_at(t), upstream.p, upstream.T,
                                     m.gas_constant(upstream.x), m.gamma(upstream.T, upstream.x)))

    def loss_coefficient(self, dp, rho_A, rho_B, dp_lam, r) -> float:
        K_AB = 1.0 - r * (2.0 - r) * min(rho_B / rho_A, 1.0)
        K_BA = 1.0 - r * (2.0 - r) * min(rho_A / rho_B, 1.0)
        K_lam = 1.0 - r * r
        K_tur = blend(K_BA, K_AB, -dp_lam, dp_lam, dp)
        return blend(K_lam, K_tur, dp_lam, 2.0 * dp_lam, abs(dp))

    def mass_flow(self, a, b, t) -> float:
        """Mass flow from A to B for node states a and b (kg/s)."""
        m = self.material
        A_R = self.area_at(t)
        r = self.Cd * A_R / self.area
        rho_A = m.density(a.p, a.T, a.x)
        rho_B = m.density(b.p, b.T, b.x)
        rho_avg = 0.5 * (rho_A + rho_B)
        dp = a.p - b.p
        dp_lam = 0.5 * (a.p + b.p) * (1.0 - self.B_lam)

        K = self.loss_coefficient(dp, rho_A, rho_B, dp_lam, r)
        mdot = self.Cd * A_R * np.sqrt(2.0 * rho_avg / K) * dp / (dp * dp + dp_lam * dp_lam)**0.25

        # Sonic limit from the upstream stagnation state
        upstream = a if dp >= 0 else b
        return float(limit_magnitude(mdot, self.sonic_limit(upstream, t), self.choke_tol))

    def pressure_residual(self, view):
        mdot = self.mass_flow(view.gas('A'), view.gas('B'), view.t)
        return (view.flow('A').mdot - mdot) / M_NOM

    def outputs(self, view):
        out = super().outputs(view)
        a, b = view.gas('A'), view.gas('B')
        limit = self.sonic_limit(a if a.p >= b.p else b, view.t)
        out.update({'area': self.area_at(view.t), 'sonic_limit': limit,
                    'choke_fraction': abs(out['mdot']) / limit})
        return out
