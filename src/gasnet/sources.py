"""
Ideal actuators: PressureSource and MassFlowSource.

Both impose one quantity between ports A and B without intrinsic
resistance. With power='isentropic' the source also does the work of an
isentropic pressure change on the gas; otherwise it is adiabatic at
constant total enthalpy.
"""

from .component import Signal, register
from .constants import PhysicalConstants
from .exceptions import ParameterValidationError
from .flow_elements import TwoPortElement

POWER_MODES = ('none', 'isentropic')


class _IdealSource(TwoPortElement):

    def __init__(self, name, command, power='none', area=PhysicalConstants.DEFAULT_PORT_AREA, material=None):
        super().__init__(name, area, material)
        if power not in POWER_MODES:
            raise ParameterValidationError(name, 'power', f"must be one of {POWER_MODES}, got {power!r}")
        self.isentropic = power == 'isentropic'
        self.command = Signal(command)

    def thermal_residual(self, view):
        if not self.isentropic:
            return super().thermal_residual(view)
        m = self.material
        a, b = view.gas('A'), view.gas('B')
        R = m.gas_constant(a.x)
        return (m.entropy(b.T, b.p, b.x) - m.entropy(a.T, a.p, a.x)) / R

    def power(self, view):
        if not self.isentropic:
            return 0.0
        mdot = view.flow('A').mdot
        return mdot * (self.total_enthalpy(view.gas('B'), mdot) - self.total_enthalpy(view.gas('A'), mdot))


@register('PressureSource')
class PressureSource(_IdealSource):
    """Imposes p_B - p_A = command (Pa)."""

    def __init__(self, name, pressure_difference=0.0, power='none',
                 area=PhysicalConstants.DEFAULT_PORT_AREA, material=None):
        super().__init__(name, pressure_difference, power, area, material)

    def pressure_residual(self, view):
        a, b = view.gas('A'), view.gas('B')
        return (b.p - a.p - float(self.command(view.t))) / PhysicalConstants.NOMINAL_PRESSURE


@register('MassFlowSource')
class MassFlowSource(_IdealSource):
    """Imposes mdot_A = command (kg/s)."""

    def __init__(self, name, mass_flow=0.0, power='none',
                 area=PhysicalConstants.DEFAULT_PORT_AREA, material=None):
        super().__init__(name, mass_flow, power, area, material)

    def flow_guess(self):
        return float(self.command(0.0))

    def pressure_residual(self, view):
        mdot = view.flow('A').mdot
        return (mdot - float(self.command(view.t))) / PhysicalConstants.NOMINAL_MASS_FLOW
