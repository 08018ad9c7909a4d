"""
Storage components: Pipe and VariableVolumeCylinder.

Both integrate the same mass, species and energy balances for an ideal gas
mixture in a control volume; they differ in how the volume is defined and in
the port submodels.
"""
import logging
from abc import abstractmethod

import numpy as np

from .component import (GAS, NON_NEGATIVE, POSITIVE, SIGN, THERMAL, TRANSLATIONAL, Component,
                        register)
from .constants import PhysicalConstants
from .correlations import (choke_limited_drop, friction_pressure_loss, ntu_heat_flow,
                           nusselt_number, reynolds_number, sonic_mass_flow)
from .exceptions import RuntimeBoundError
from .ports import PortConvection
from .source_terms import CondensationSource, InjectionSource
from .state import GasState, normalize_composition

logger = logging.getLogger(__name__)

P_NOM = PhysicalConstants.NOMINAL_PRESSURE
T_NOM = PhysicalConstants.NOMINAL_TEMPERATURE
Q_NOM = PhysicalConstants.NOMINAL_HEAT_FLOW
F_NOM = PhysicalConstants.NOMINAL_FORCE


class GasVolume(Component):
    """
    Control volume of an ideal gas mixture with states [p, T, x_1..x_N].

    Balances (F: net mass inflow, F_i: species inflow, E: energy inflow):
        m dx_i/dt = F_i - x_i F
        V (rho_p dp/dt + rho_T dT/dt + rho_x . dx/dt) = F - rho dV/dt
        m cp dT/dt - V dp/dt = E - sum_i h_i F_i
    Condensation and external injection enter as source terms.
    """
    guess_priority = 1

    def _init_gas_state(self, p, T, composition, composition_basis, condensation_time_constant,
                        injection, injection_temperature, injected_liquid):
        m = self.material
        p = self.params.declare('p', p, 'Pa', POSITIVE)
        T = self.params.declare('T', T, 'K', POSITIVE)
        x = normalize_composition(composition, composition_basis, m, self.name)
        self.initial = GasState(p, T, x)
        tau = self.params.declare('condensation_time_constant', condensation_time_constant, 's', POSITIVE)
        self.condensation = CondensationSource(tau)
        self.injection = None
        if injection is not None:
            self.injection = InjectionSource(injection, injection_temperature, injected_liquid)
            if np.shape(self.injection.species_flow(0.0)) != (m.n_species,):
                self.params.require('injection', False, f"must provide {m.n_species} species flows")
        self.n_gas = m.n_species + 2
        self.fraction_states = slice(2, self.n_gas)
        self.state_names = ('p', 'T') + tuple(f"x_{sp}" for sp in m.table.names)

    def initial_states(self):
        return self.initial.to_array()

    def state_scales(self):
        return np.concatenate([[P_NOM, T_NOM], np.ones(self.material.n_species)])

    def interior(self, view) -> GasState:
        return GasState.from_array(view.states[:self.n_gas])

    def _sources(self, inner, mass, t):
        m = self.material
        cond_species, cond_energy = self.condensation.get_sources(m, inner.p, inner.T, inner.x, mass, t)
        if self.injection is None:
            return cond_species, cond_energy
        inj_species, inj_energy = self.injection.get_sources(m, inner.p, inner.T, inner.x, mass, t)
        return cond_species + inj_species, cond_energy + inj_energy

    def _balances(self, inner, V, dVdt, species_flow, energy_flow, t):
        """State derivatives [dp/dt, dT/dt, dx/dt] for given port inflows."""
        m = self.material
        rho = m.density(inner.p, inner.T, inner.x)
        mass = rho * V

        src_species, src_energy = self._sources(inner, mass, t)
        F_i = species_flow + src_species
        F = float(np.sum(F_i))
        E = energy_flow + src_energy

        dx = (F_i - inner.x * F) / mass

        rho_p, rho_T, rho_x = m.density_derivatives(inner.p, inner.T, inner.x)
        b1 = (F - rho * dVdt) / V - float(np.dot(rho_x, dx))
        b2 = E - float(np.dot(m.species_enthalpy(inner.T), F_i))
        a11, a12 = rho_p, rho_T
        a21, a22 = -V, mass * m.cp(inner.T, inner.x)
        det = a11 * a22 - a12 * a21
        dp = (b1 * a22 - a12 * b2) / det
        dT = (a11 * b2 - a21 * b1) / det
        return np.concatenate([[dp, dT], dx])

    @abstractmethod
    def volume(self, view) -> float:
        pass

    def state_bounds(self):
        table = self.material.table
        lower, upper = super().state_bounds()
        lower[:2] = table.p_min, table.T_min
        lower[2:self.n_gas] = 0.0
        upper[2:self.n_gas] = 1.0
        return lower, upper

    def check_bounds(self, view):
        inner = self.interior(view)
        table = self.material.table
        if inner.p < table.p_min:
            raise RuntimeBoundError(self.name, 'p_I', inner.p, table.p_min)
        if inner.T < table.T_min:
            raise RuntimeBoundError(self.name, 'T_I', inner.T, table.T_min)
        mass = inner.density(self.material) * self.volume(view)
        species_mass = mass * inner.x
        worst = int(np.argmin(species_mass))
        if species_mass[worst] < PhysicalConstants.MIN_SPECIES_MASS:
            raise RuntimeBoundError(self.name, f"mass_{table.names[worst]}", float(species_mass[worst]),
                                    PhysicalConstants.MIN_SPECIES_MASS)

    def outputs(self, view):
        m = self.material
        inner = self.interior(view)
        V = self.volume(view)
        rho = m.density(inner.p, inner.T, inner.x)
        mass = rho * V
        p_sat = m.saturation_pressure(inner.T)
        partial = m.partial_pressures(inner.p, inner.x)
        out = {
            'p': inner.p, 'T': inner.T, 'x': inner.x, 'y': m.mole_fractions(inner.x),
            'density': rho, 'volume': V, 'mass': mass, 'species_mass': mass * inner.x,
            'condensation': self.condensation.rates(m, inner.p, inner.T, inner.x, mass),
        }
        condensable = m.table.condensable
        out['relative_humidity'] = np.where(condensable, partial / p_sat, 0.0)
        return out


@register('Pipe')
class Pipe(GasVolume):
    """
    Rigid pipe with ports A and B, thermal port H and optional species injection.

    Each port carries half of the pipe friction and a velocity term; the
    driving pressure difference is limited at the drop that produces sonic
    flow. Wall heat transfer uses a laminar/Gnielinski Nusselt number with an
    NTU saturation plus conduction through the gas.
    """

    def __init__(self, name, length=1.0, area=0.01, hydraulic_diameter=None, roughness=15e-6,
                 shape_factor=64.0, Re_lam=2000.0, Re_tur=4000.0, Nu_lam=3.66, additional_length=0.0,
                 choke_tolerance=PhysicalConstants.CHOKE_TOLERANCE,
                 p=PhysicalConstants.DEFAULT_PRESSURE, T=PhysicalConstants.DEFAULT_TEMPERATURE,
                 composition=PhysicalConstants.DEFAULT_COMPOSITION, composition_basis='mass',
                 condensation_time_constant=1e-3, injection=None,
                 injection_temperature=PhysicalConstants.DEFAULT_TEMPERATURE, injected_liquid=None,
                 material=None):
        super().__init__(name, material)
        self.add_port('A', GAS)
        self.add_port('B', GAS)
        self.add_port('H', THERMAL)

        P = self.params
        self.length = P.declare('length', length, 'm', POSITIVE)
        self.area = P.declare('area', area, 'm^2', POSITIVE)
        if hydraulic_diameter is None:
            hydraulic_diameter = np.sqrt(4.0 * self.area / np.pi)
        self.D_h = P.declare('hydraulic_diameter', hydraulic_diameter, 'm', POSITIVE)
        self.roughness = P.declare('roughness', roughness, 'm', NON_NEGATIVE)
        self.shape_factor = P.declare('shape_factor', shape_factor, '1', POSITIVE)
        self.Re_lam = P.declare('Re_lam', Re_lam, '1', POSITIVE)
        self.Re_tur = P.declare('Re_tur', Re_tur, '1', POSITIVE)
        P.require('Re_tur', self.Re_tur > self.Re_lam, "must exceed Re_lam")
        self.Nu_lam = P.declare('Nu_lam', Nu_lam, '1', POSITIVE)
        self.L_add = P.declare('additional_length', additional_length, 'm', NON_NEGATIVE)
        self.choke_tol = P.declare('choke_tolerance', choke_tolerance, '1', POSITIVE)
        P.require('choke_tolerance', self.choke_tol < 1.0, "must be < 1")

        self._init_gas_state(p, T, composition, composition_basis, condensation_time_constant,
                             injection, injection_temperature, injected_liquid)
        self.V = self.area * self.length
        self.S_H = 4.0 * self.V / self.D_h
        half = 0.5 * self.length
        self.adapters = {'A': PortConvection(self.area, half), 'B': PortConvection(self.area, half)}

    def volume(self, view=None):
        return self.V

    def guess_across(self, port_name):
        if port_name == 'H':
            return np.array([self.initial.T])
        return self.initial.to_array()

    def port_pressure_drop(self, mdot, rho_node, rho_I, mu_I):
        """Node minus interior pressure for a given port inflow (Pa)."""
        velocity = (mdot / self.area)**2 * (1.0 / rho_I - 1.0 / rho_node)
        friction = friction_pressure_loss(mdot, rho_I, mu_I, 0.5 * (self.length + self.L_add), self.area,
                                          self.D_h, self.roughness, self.shape_factor, self.Re_lam, self.Re_tur)
        return velocity + friction

    def _momentum_residual(self, node, inner, mdot, rho_node, rho_I, mu_I):
        m = self.material
        floor = PhysicalConstants.TOLERANCE_SMALL * P_NOM
        mdot_in = sonic_mass_flow(self.area, node.p, node.T, m.gas_constant(node.x), m.gamma(node.T, node.x))
        mdot_out = sonic_mass_flow(self.area, inner.p, inner.T, m.gas_constant(inner.x), m.gamma(inner.T, inner.x))
        dp_in = max(abs(self.port_pressure_drop(mdot_in, rho_node, rho_I, mu_I)), floor)
        dp_out = max(abs(self.port_pressure_drop(-mdot_out, rho_node, rho_I, mu_I)), floor)
        driving = choke_limited_drop(node.p - inner.p, dp_in, dp_out, self.choke_tol)
        return (self.port_pressure_drop(mdot, rho_node, rho_I, mu_I) - driving) / P_NOM

    def wall_heat_flow(self, inner, T_wall, mdot_through):
        """Heat into the gas from the wall at T_wall (W)."""
        m = self.material
        mu = m.viscosity(inner.T, inner.x)
        k = m.conductivity(inner.T, inner.x)
        cp = m.cp(inner.T, inner.x)
        Re = reynolds_number(mdot_through, self.D_h, self.area, mu)
        Nu = nusselt_number(Re, mu * cp / k, self.roughness, self.D_h, self.Nu_lam, self.Re_lam, self.Re_tur)
        hA = Nu * k / self.D_h * self.S_H
        dT = T_wall - inner.T
        return ntu_heat_flow(mdot_through, cp, hA, dT) + k * self.S_H / self.D_h * dT

    def equations(self, view):
        m = self.material
        inner = self.interior(view)
        rho_I = m.density(inner.p, inner.T, inner.x)
        mu_I = m.viscosity(inner.T, inner.x)

        species_flow = np.zeros(m.n_species)
        energy_flow = 0.0
        residuals = []
        flows = {}
        for name in ('A', 'B'):
            node = view.gas(name)
            flow = view.flow(name)
            flows[name] = flow
            rho_node = m.density(node.p, node.T, node.x)
            residuals.append([self._momentum_residual(node, inner, flow.mdot, rho_node, rho_I, mu_I)])
            residuals.append(self.adapters[name].residuals(m, flow, node, inner, rho_node, rho_I))
            species_flow += flow.mdot_i
            energy_flow += flow.Phi

        # Wall heat
        T_wall = view.across('H')[0]
        Q_H = view.through('H')[0]
        mdot_through = 0.5 * (flows['A'].mdot - flows['B'].mdot)
        Q_wall = self.wall_heat_flow(inner, T_wall, mdot_through)
        residuals.append([(Q_H - Q_wall) / Q_NOM])
        energy_flow += Q_H

        derivs = self._balances(inner, self.V, 0.0, species_flow, energy_flow, view.t)
        return derivs, np.concatenate(residuals)

    def outputs(self, view):
        out = super().outputs(view)
        flow_A, flow_B = view.flow('A'), view.flow('B')
        out.update({'mdot_A': flow_A.mdot, 'mdot_B': flow_B.mdot, 'Q_H': float(view.through('H')[0])})
        return out


@register('VariableVolumeCylinder')
class VariableVolumeCylinder(GasVolume):
    """
    Gas chamber closed by a piston.

    V = dead_volume + piston_area * displacement, with
    d(displacement)/dt = orientation * (v_R - v_C). The gas pushes on the
    mechanical network with F_R = -orientation * (p - p_env) * piston_area.
    """

    def __init__(self, name, piston_area=1e-3, dead_volume=1e-5, displacement=0.05, orientation=1,
                 environment_pressure=PhysicalConstants.DEFAULT_PRESSURE,
                 port_area=PhysicalConstants.DEFAULT_PORT_AREA, heat_transfer_coefficient=0.0,
                 p=PhysicalConstants.DEFAULT_PRESSURE, T=PhysicalConstants.DEFAULT_TEMPERATURE,
                 composition=PhysicalConstants.DEFAULT_COMPOSITION, composition_basis='mass',
                 condensation_time_constant=1e-3, injection=None,
                 injection_temperature=PhysicalConstants.DEFAULT_TEMPERATURE, injected_liquid=None,
                 material=None):
        super().__init__(name, material)
        self.add_port('A', GAS)
        self.add_port('R', TRANSLATIONAL)
        self.add_port('C', TRANSLATIONAL)
        self.add_port('H', THERMAL)

        P = self.params
        self.piston_area = P.declare('piston_area', piston_area, 'm^2', POSITIVE)
        self.dead_volume = P.declare('dead_volume', dead_volume, 'm^3', POSITIVE)
        self.displacement0 = P.declare('displacement', displacement, 'm', NON_NEGATIVE)
        self.orientation = P.declare('orientation', orientation, '1', SIGN)
        self.p_env = P.declare('environment_pressure', environment_pressure, 'Pa', NON_NEGATIVE)
        port_area = P.declare('port_area', port_area, 'm^2', POSITIVE)
        self.h_wall = P.declare('heat_transfer_coefficient', heat_transfer_coefficient, 'W/(m^2*K)',
                                NON_NEGATIVE)

        self._init_gas_state(p, T, composition, composition_basis, condensation_time_constant,
                             injection, injection_temperature, injected_liquid)
        self.state_names = self.state_names + ('displacement',)
        self.adapter = PortConvection(port_area, np.sqrt(4.0 * port_area / np.pi))
        self._bore = np.sqrt(4.0 * self.piston_area / np.pi)

    def initial_states(self):
        return np.concatenate([self.initial.to_array(), [self.displacement0]])

    def state_scales(self):
        return np.concatenate([super().state_scales(), [self._bore]])

    def volume(self, view):
        return self.dead_volume + self.piston_area * view.states[-1]

    def guess_across(self, port_name):
        if port_name == 'A':
            return self.initial.to_array()
        if port_name == 'H':
            return np.array([self.initial.T])
        return None

    def wall_area(self, V):
        """Piston face, head and liner of a cylinder of volume V."""
        return 2.0 * self.piston_area + np.pi * self._bore * V / self.piston_area

    def equations(self, view):
        m = self.material
        inner = self.interior(view)
        V = self.volume(view)
        rho_I = m.density(inner.p, inner.T, inner.x)

        # Gas port (no friction)
        node = view.gas('A')
        flow = view.flow('A')
        rho_node = m.density(node.p, node.T, node.x)
        r_gas = np.concatenate([[(node.p - inner.p) / P_NOM],
                                self.adapter.residuals(m, flow, node, inner, rho_node, rho_I)])

        # Mechanical interface
        velocity = view.across('R')[0] - view.across('C')[0]
        F_R, F_C = view.through('R')[0], view.through('C')[0]
        force = -self.orientation * (inner.p - self.p_env) * self.piston_area
        r_mech = np.array([(F_R - force) / F_NOM, (F_R + F_C) / F_NOM])

        # Wall heat: film coefficient plus conduction across the bore
        T_wall = view.across('H')[0]
        Q_H = view.through('H')[0]
        k = m.conductivity(inner.T, inner.x)
        Q_wall = (self.h_wall + k / self._bore) * self.wall_area(V) * (T_wall - inner.T)
        r_heat = np.array([(Q_H - Q_wall) / Q_NOM])

        d_disp = self.orientation * velocity
        dVdt = self.piston_area * d_disp
        derivs = self._balances(inner, V, dVdt, flow.mdot_i, flow.Phi + Q_H, view.t)
        return np.concatenate([derivs, [d_disp]]), np.concatenate([r_gas, r_mech, r_heat])

    def check_bounds(self, view):
        V = self.volume(view)
        if V <= 0:
            raise RuntimeBoundError(self.name, 'volume', V, 0.0)
        super().check_bounds(view)

    def outputs(self, view):
        out = super().outputs(view)
        out.update({'displacement': float(view.states[-1]), 'mdot_A': view.flow('A').mdot,
                    'force': float(view.through('R')[0])})
        return out
