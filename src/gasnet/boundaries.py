"""
Boundary elements: gas Cap and Reservoir, plus the thermal and mechanical
sources that close the ports of volumes and the compressor.
"""
import numpy as np

from .component import (GAS, POSITIVE, ROTATIONAL, THERMAL, TRANSLATIONAL, Component, Signal,
                        register)
from .constants import PhysicalConstants
from .exceptions import ParameterValidationError
from .ports import PortConvection
from .state import GasState, composition_converter, normalize_composition

P_NOM = PhysicalConstants.NOMINAL_PRESSURE
T_NOM = PhysicalConstants.NOMINAL_TEMPERATURE


def _gas_scales(n_species):
    return np.concatenate([[P_NOM, T_NOM], np.ones(n_species)])


@register('Cap')
class Cap(Component):
    """
    Dead end that fixes p, T and x at its node.

    The port flow is not constrained: a cap acts as a fixed-potential
    boundary and delivers whatever flow the node needs. It is zero only
    when the node is otherwise closed. AssembledSystem._check_caps logs a
    warning for any accepted state with flow through a cap and carries on.
    """
    guess_priority = 3
    blocks_flow = True

    def __init__(self, name, p=PhysicalConstants.DEFAULT_PRESSURE, T=PhysicalConstants.DEFAULT_TEMPERATURE,
                 composition=PhysicalConstants.DEFAULT_COMPOSITION, composition_basis='mass', material=None):
        super().__init__(name, material)
        self.add_port('A', GAS)
        p = self.params.declare('p', p, 'Pa', POSITIVE)
        T = self.params.declare('T', T, 'K', POSITIVE)
        x = normalize_composition(composition, composition_basis, self.material, name)
        self.state = GasState(p, T, x)
        self._target = self.state.to_array()
        self._scales = _gas_scales(self.material.n_species)

    def guess_across(self, port_name):
        return self._target

    def equations(self, view):
        return np.zeros(0), (view.across('A') - self._target) / self._scales

    def outputs(self, view):
        flow = view.flow('A')
        return {'mdot': flow.mdot, 'Phi': flow.Phi, 'mdot_i': flow.mdot_i}


class _ConstantBoundary:
    def __init__(self, state):
        self.state = state

    def __call__(self, t):
        return self.state


class _SignalBoundary:
    def __init__(self, p, T, composition, convert, material):
        self.p, self.T, self.composition = p, T, composition
        self.convert = convert
        self.material = material

    def __call__(self, t):
        return GasState(float(self.p(t)), float(self.T(t)),
                        self.convert(self.composition(t), self.material))


@register('Reservoir')
class Reservoir(Component):
    """
    Infinite reservoir at fixed (or signal-driven) p0, T0 and composition.

    Outflow leaves at the reservoir state; inflow brings whatever the network
    supplies, through the port convection adapter.
    """
    guess_priority = 2

    def __init__(self, name, p=PhysicalConstants.DEFAULT_PRESSURE, T=PhysicalConstants.DEFAULT_TEMPERATURE,
                 composition=PhysicalConstants.DEFAULT_COMPOSITION, composition_basis='mass',
                 area=PhysicalConstants.DEFAULT_PORT_AREA, material=None):
        super().__init__(name, material)
        self.add_port('A', GAS)
        area = self.params.declare('area', area, 'm^2', POSITIVE)
        self.adapter = PortConvection(area, np.sqrt(4.0 * area / np.pi))

        signals = [Signal(v) for v in (p, T, composition)]
        if all(s.is_constant for s in signals):
            p = self.params.declare('p', p, 'Pa', POSITIVE)
            T = self.params.declare('T', T, 'K', POSITIVE)
            x = normalize_composition(composition, composition_basis, self.material, name)
            self._boundary = _ConstantBoundary(GasState(p, T, x))
        else:
            convert = composition_converter(composition_basis, name)
            self._boundary = _SignalBoundary(*signals, convert=convert, material=self.material)
            initial = self._boundary(0.0)
            if initial.p <= 0 or initial.T <= 0:
                raise ParameterValidationError(name, 'p/T', "signals must start positive")
            normalize_composition(initial.x, 'mass', self.material, name)

    def boundary_state(self, t) -> GasState:
        return self._boundary(t)

    def guess_across(self, port_name):
        return self._boundary(0.0).to_array()

    def equations(self, view):
        res = self._boundary(view.t)
        node = view.gas('A')
        flow = view.flow('A')
        m = self.material
        r_p = (node.p - res.p) / P_NOM
        r_port = self.adapter.residuals(m, flow, node, res, m.density(node.p, node.T, node.x), None)
        return np.zeros(0), np.concatenate([[r_p], r_port])

    def outputs(self, view):
        flow = view.flow('A')
        return {'mdot': flow.mdot, 'Phi': flow.Phi, 'mdot_i': flow.mdot_i}


# --- Thermal ---------------------------------------------------------------

@register('TemperatureSource')
class TemperatureSource(Component):
    """Ideal temperature source on a thermal node (constant or signal)."""
    guess_priority = 2

    def __init__(self, name, T=PhysicalConstants.DEFAULT_TEMPERATURE, material=None):
        super().__init__(name, material)
        self.add_port('H', THERMAL)
        self.T = Signal(T)
        if self.T.is_constant:
            self.params.declare('T', T, 'K', POSITIVE)

    def guess_across(self, port_name):
        return np.array([self.T(0.0)])

    def equations(self, view):
        return np.zeros(0), np.array([(view.across('H')[0] - self.T(view.t)) / T_NOM])

    def outputs(self, view):
        return {'Q': -float(view.through('H')[0])}


@register('HeatFlowSource')
class HeatFlowSource(Component):
    """Delivers Q (W) into its thermal node."""

    def __init__(self, name, Q=0.0, material=None):
        super().__init__(name, material)
        self.add_port('H', THERMAL)
        self.Q = Signal(Q)

    def equations(self, view):
        Q_in = view.through('H')[0]
        return np.zeros(0), np.array([(Q_in + self.Q(view.t)) / PhysicalConstants.NOMINAL_HEAT_FLOW])


# --- Mechanical ------------------------------------------------------------

class _IdealMotionSource(Component):
    """Imposes the relative speed of ports R and C; transmits the load."""
    domain = None
    across_scale = 1.0
    through_scale = 1.0
    guess_priority = 1

    def __init__(self, name, speed=0.0, material=None):
        super().__init__(name, material)
        self.add_port('R', self.domain)
        self.add_port('C', self.domain)
        self.speed = Signal(speed)

    def guess_across(self, port_name):
        # Case assumed grounded
        if port_name == 'R':
            return np.array([float(self.speed(0.0))])
        return np.zeros(1)

    def equations(self, view):
        r_speed = (view.across('R')[0] - view.across('C')[0] - self.speed(view.t)) / self.across_scale
        r_load = (view.through('R')[0] + view.through('C')[0]) / self.through_scale
        return np.zeros(0), np.array([r_speed, r_load])

    def outputs(self, view):
        return {'speed': float(view.across('R')[0] - view.across('C')[0]),
                'load': float(view.through('R')[0])}


@register('VelocitySource')
class VelocitySource(_IdealMotionSource):
    domain = TRANSLATIONAL
    across_scale = PhysicalConstants.NOMINAL_VELOCITY
    through_scale = PhysicalConstants.NOMINAL_FORCE


@register('AngularVelocitySource')
class AngularVelocitySource(_IdealMotionSource):
    domain = ROTATIONAL
    across_scale = 100.0  # rad/s
    through_scale = PhysicalConstants.NOMINAL_TORQUE


@register('MechanicalReference')
class MechanicalReference(Component):
    """Zero-velocity ground for a translational or rotational network."""
    guess_priority = 2

    def __init__(self, name, domain='translational', material=None):
        super().__init__(name, material)
        domains = {'translational': TRANSLATIONAL, 'rotational': ROTATIONAL}
        if domain not in domains:
            raise ParameterValidationError(name, 'domain', f"must be one of {sorted(domains)}")
        self.add_port('R', domains[domain])

    def guess_across(self, port_name):
        return np.zeros(1)

    def equations(self, view):
        return np.zeros(0), np.array([view.across('R')[0]])
