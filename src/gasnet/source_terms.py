from abc import ABC, abstractmethod
from typing import Tuple

import numpy as np

from .blend import blend
from .component import Signal


class SourceTerm(ABC):
    """
    Abstract Base Class for volumetric source terms in the conservation equations
    of a gas volume.
    """
    @abstractmethod
    def get_sources(self, material, p: float, T: float, x: np.ndarray, mass: float,
                    t: float) -> Tuple[np.ndarray, float]:
        """
        Calculate source terms for a control volume.

        Returns:
            species_src (np.array): Mass source per species [kg/s] (Negative for removal)
            energy_src (float): Energy source [W] (Negative for sink)
        """
        pass


class CondensationSource(SourceTerm):
    """
    Handles condensation of vapour species:
    - Mass Source: -excess vapour over the time constant tau_c
    - Energy Source: enthalpy of the liquid leaving the gas, h(T) - h_fg(T)

    The rate is exactly zero at or below saturation and has a smooth onset over
    1% of the saturation mass fraction above it.
    """
    ONSET_BAND = 0.01

    def __init__(self, time_constant: float):
        self.tau = time_constant

    @staticmethod
    def saturation_fractions(material, p, T, x) -> np.ndarray:
        """
        Mass fraction at which each condensable species reaches its saturation
        pressure; 1.0 for non-condensables and when p_sat >= p.
        """
        x = np.asarray(x, dtype=float)
        R_i = material.R_i
        p_sat = material.saturation_pressure(T)
        x_sat = np.ones_like(x)
        for i in np.flatnonzero(material.table.condensable):
            others = np.arange(x.size) != i
            x_other = np.sum(x[others])
            if x_other > 1e-12:
                R_other = np.dot(x[others], R_i[others]) / x_other
            else:
                R_other = R_i[i]
            if p_sat[i] >= p:
                continue
            x_sat[i] = p_sat[i] * R_other / (R_i[i] * (p - p_sat[i]) + p_sat[i] * R_other)
        return x_sat

    def rates(self, material, p, T, x, mass) -> np.ndarray:
        """Condensed mass flow per species (kg/s, >= 0)."""
        x = np.asarray(x, dtype=float)
        x_sat = self.saturation_fractions(material, p, T, x)
        excess = x - x_sat
        rate = np.zeros_like(x)
        for i in np.flatnonzero(material.table.condensable):
            rate[i] = mass * blend(0.0, excess[i], 0.0, self.ONSET_BAND * x_sat[i], excess[i]) / self.tau
        return rate

    def get_sources(self, material, p, T, x, mass, t):
        mdot_c = self.rates(material, p, T, x, mass)
        h_liquid = material.species_enthalpy(T) - material.heat_of_vaporization(T)
        return -mdot_c, -float(np.dot(mdot_c, h_liquid))


class InjectionSource(SourceTerm):
    """
    Handles external species injection/removal:
    - Mass Source: commanded per-species mass flow (signal)
    - Energy Source: enthalpy at the injection temperature for inflow, at the
      volume temperature for outflow; species injected as liquid carry
      h - h_fg.
    """

    def __init__(self, flow, temperature, liquid=None):
        self.flow = Signal(flow)
        self.temperature = Signal(temperature)
        self.liquid = None if liquid is None else np.asarray(liquid, dtype=bool)

    def species_flow(self, t) -> np.ndarray:
        return np.asarray(self.flow(t), dtype=float)

    def injection_heat(self, material, mdot_inj, T_inj, T) -> float:
        """Sum over species of mdot_i*(h_i(T_sel) - [liquid] h_fg(T_sel))."""
        inflow = mdot_inj > 0
        h = np.where(inflow, material.species_enthalpy(T_inj), material.species_enthalpy(T))
        if self.liquid is not None:
            h_fg = np.where(inflow, material.heat_of_vaporization(T_inj), material.heat_of_vaporization(T))
            h = h - np.where(self.liquid, h_fg, 0.0)
        return float(np.dot(mdot_inj, h))

    def get_sources(self, material, p, T, x, mass, t):
        mdot_inj = self.species_flow(t)
        return mdot_inj, self.injection_heat(material, mdot_inj, float(self.temperature(t)), T)
