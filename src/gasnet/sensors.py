"""
Ideal, zero-impedance sensors between ports A and B.

A sensor makes p, T and x equal at both ports and passes every flow
through unchanged; it only differs in what it reports.
"""
from abc import abstractmethod

import numpy as np

from .component import GAS, Component, register
from .constants import PhysicalConstants
from .exceptions import ParameterValidationError

M_NOM = PhysicalConstants.NOMINAL_MASS_FLOW


class _Sensor(Component):

    def __init__(self, name, material=None):
        super().__init__(name, material)
        self.add_port('A', GAS)
        self.add_port('B', GAS)
        n = self.material.n_species
        self._across_scales = np.concatenate([[PhysicalConstants.NOMINAL_PRESSURE,
                                               PhysicalConstants.NOMINAL_TEMPERATURE], np.ones(n)])
        self._through_scales = GAS.through_scales(n)

    def equations(self, view):
        r_across = (view.across('A') - view.across('B')) / self._across_scales
        r_through = (view.through('A') + view.through('B')) / self._through_scales
        return np.zeros(0), np.concatenate([r_across, r_through])

    @abstractmethod
    def measure(self, view) -> dict:
        pass

    def outputs(self, view):
        state = view.gas('A')
        out = {'p': state.p, 'T': state.T}
        out.update(self.measure(view))
        return out


@register('MassFlowSensor')
class MassFlowSensor(_Sensor):
    """Mass flow, species mass flows and energy flow from A to B."""

    def measure(self, view):
        flow = view.flow('A')
        return {'mdot': flow.mdot, 'mdot_i': flow.mdot_i, 'Phi': flow.Phi}


@register('VolumetricFlowSensor')
class VolumetricFlowSensor(_Sensor):
    """Volumetric flow at the actual or at standard (0 C, 1 atm) conditions."""
    REFERENCES = ('actual', 'standard')

    def __init__(self, name, reference='actual', material=None):
        super().__init__(name, material)
        if reference not in self.REFERENCES:
            raise ParameterValidationError(name, 'reference',
                                           f"must be one of {self.REFERENCES}, got {reference!r}")
        self.reference = reference

    def measure(self, view):
        m = self.material
        state = view.gas('A')
        if self.reference == 'actual':
            rho = m.density(state.p, state.T, state.x)
        else:
            rho = m.density(PhysicalConstants.STANDARD_PRESSURE, PhysicalConstants.STANDARD_TEMPERATURE, state.x)
        return {'volumetric_flow': view.flow('A').mdot / rho}


@register('ThermoPropSensor')
class ThermoPropSensor(_Sensor):

    def measure(self, view):
        m = self.material
        s = view.gas('A')
        return {
            'h': m.enthalpy(s.T, s.x),
            'density': m.density(s.p, s.T, s.x),
            'cp': m.cp(s.T, s.x),
            's': m.entropy(s.T, s.p, s.x),
        }


@register('SpeciesFracs')
class SpeciesFracs(_Sensor):

    def measure(self, view):
        x = view.gas('A').x
        return {'x': x, 'y': self.material.mole_fractions(x)}
