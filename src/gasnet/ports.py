"""
Port convection adapter.

Sits on the gas port of every storage component (and of the Reservoir) and
turns the flow-direction dependent upwind choice into a smooth flux:

    Phi    = (G~th + mdot)/2 * h_in  - (G~th - mdot)/2 * h_out
    mdot_i = (G~x  + mdot)/2 * x_in  - (G~x  - mdot)/2 * x_out

with G~ = sqrt(mdot^2 + 4 G^2). "in" is the connected node, "out" the
component interior; mdot is positive into the component.
"""
import numpy as np

from .blend import smooth_magnitude
from .constants import PhysicalConstants


def kinetic_energy(mdot, rho, area):
    """Specific kinetic energy 0.5*u^2 (J/kg) of a flow through area."""
    u = mdot / (rho * area)
    return 0.5 * u * u


class PortConvection:
    def __init__(self, area: float, length: float):
        self.area = area
        self.length = length

    def conductance(self, material, T, x):
        """
        Thermal conductance k*A/(L*cp) in kg/s and the species diffusive
        conductances. Diffusivity follows from the mixture conductivity at unit
        Lewis number, so every species shares the same conductance.
        """
        G = material.conductivity(T, x) * self.area / (self.length * material.cp(T, x))
        G = max(G, PhysicalConstants.MIN_CONDUCTANCE)
        return G, np.full(material.n_species, G)

    def fluxes(self, mdot, h_in, h_out, x_in, x_out, G_th, G_x):
        """
        Returns:
            Phi (float): energy flow into the component [W]
            mdot_i (np.array): species mass flows into the component [kg/s]
        """
        G_th_s = smooth_magnitude(mdot, G_th)
        G_x_s = smooth_magnitude(mdot, G_x)
        Phi = 0.5 * (G_th_s + mdot) * h_in - 0.5 * (G_th_s - mdot) * h_out
        mdot_i = 0.5 * (G_x_s + mdot) * np.asarray(x_in) - 0.5 * (G_x_s - mdot) * np.asarray(x_out)
        return float(Phi), mdot_i

    def residuals(self, material, flow, node, inner, rho_node, rho_inner):
        """
        Port residuals [Phi, mdot_i...] normalised by the nominal scales.

        Args:
            flow: GasFlow through the port.
            node: GasState of the connected node (inflow side).
            inner: GasState of the component interior (outflow side).
            rho_inner: Interior density, or None for a stagnant interior.
        """
        G_th, G_x = self.conductance(material, inner.T, inner.x)
        h_in = material.enthalpy(node.T, node.x) + kinetic_energy(flow.mdot, rho_node, self.area)
        h_out = material.enthalpy(inner.T, inner.x)
        if rho_inner is not None:
            h_out += kinetic_energy(flow.mdot, rho_inner, self.area)
        Phi, mdot_i = self.fluxes(flow.mdot, h_in, h_out, node.x, inner.x, G_th, G_x)
        energy_scale = PhysicalConstants.NOMINAL_MASS_FLOW * PhysicalConstants.NOMINAL_ENTHALPY
        return np.concatenate([
            [(flow.Phi - Phi) / energy_scale],
            (flow.mdot_i - mdot_i) / PhysicalConstants.NOMINAL_MASS_FLOW,
        ])
