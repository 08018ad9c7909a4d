"""
Friction, wall convection and sonic-flow correlations for pipe flow.
"""
import numpy as np

from .blend import blend, limit_magnitude
from .constants import PhysicalConstants


def reynolds_number(mdot, D_h, area, mu):
    return abs(mdot) * D_h / (area * mu)


def haaland_friction_factor(Re, roughness, D_h):
    """Darcy friction factor from the Haaland correlation."""
    Re = max(Re, 1.0)
    term = 6.9 / Re + (roughness / D_h / 3.7)**1.11
    return 1.0 / (-1.8 * np.log10(term))**2


def friction_pressure_loss(mdot, rho, mu, length, area, D_h, roughness,
                           shape_factor=64.0, Re_lam=2000.0, Re_tur=4000.0):
    """
    Viscous pressure loss along a duct of given length, signed with mdot (Pa).

    Laminar:   dp = shape_factor * mu * L * mdot / (2 rho D_h^2 A)
    Turbulent: dp = f_D * L * mdot|mdot| / (2 rho D_h A^2)
    """
    Re = reynolds_number(mdot, D_h, area, mu)
    dp_lam = shape_factor * mu * length * mdot / (2.0 * rho * D_h**2 * area)
    f = haaland_friction_factor(Re, roughness, D_h)
    dp_tur = f * length * mdot * abs(mdot) / (2.0 * rho * D_h * area**2)
    return blend(dp_lam, dp_tur, Re_lam, Re_tur, Re)


def gnielinski_nusselt(Re, Pr, f):
    Pr = max(Pr, PhysicalConstants.TOLERANCE_SMALL)
    return (f / 8.0) * (Re - 1000.0) * Pr / (1.0 + 12.7 * np.sqrt(f / 8.0) * (Pr**(2.0 / 3.0) - 1.0))


def nusselt_number(Re, Pr, roughness, D_h, Nu_lam=3.66, Re_lam=2000.0, Re_tur=4000.0):
    """Laminar constant blended into Gnielinski on the Reynolds thresholds."""
    f = haaland_friction_factor(Re, roughness, D_h)
    Nu_tur = gnielinski_nusselt(max(Re, Re_lam), Pr, f)
    return blend(Nu_lam, Nu_tur, Re_lam, Re_tur, Re)


def ntu_heat_flow(mdot, cp, hA, dT):
    """
    Heat duty with exponential temperature approach.

    Q = C * dT * (1 - exp(-NTU)), C = |mdot| cp, NTU = hA / C.
    The flow magnitude is floored so NTU stays bounded at zero flow, where the
    duty tends to zero instead of hA*dT.
    """
    m_floor = PhysicalConstants.TOLERANCE_SMALL
    C = np.sqrt(mdot * mdot + m_floor * m_floor) * cp
    NTU = hA / C
    return C * dT * (1.0 - np.exp(-NTU))


def sonic_mass_flow(area, p, T, R, gamma):
    """Choked mass flow through area from stagnation conditions (kg/s)."""
    gamma = max(gamma, 1.0 + PhysicalConstants.TOLERANCE_SMALL)
    exponent = (gamma + 1.0) / (2.0 * (gamma - 1.0))
    return area * p * np.sqrt(gamma / (R * T)) * (2.0 / (gamma + 1.0))**exponent


def choke_limited_drop(dp, dp_choked_forward, dp_choked_reverse, tolerance):
    """
    Saturate a driving pressure difference at the drop that produces sonic flow.

    dp >= 0 is limited by dp_choked_forward, dp < 0 by dp_choked_reverse.
    """
    limit = dp_choked_forward if dp >= 0 else dp_choked_reverse
    return float(limit_magnitude(dp, limit, tolerance))
