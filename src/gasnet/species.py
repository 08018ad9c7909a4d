"""
Species property table.

Per-species constants and temperature-indexed property curves, shared
read-only by every component of a network. Curves are stored mass
specific (J/kg, J/(kg*K)) on a strictly increasing temperature grid.
"""
import json
import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Sequence, Tuple

import numpy as np

from . import physics
from .constants import PhysicalConstants

logger = logging.getLogger(__name__)

# cp [J/(kg*K)], h [J/kg], s [J/(kg*K)], mu [Pa*s], k [W/(m*K)],
# log_psat [ln Pa], h_vap [J/kg]
PROPERTY_NAMES = ('cp', 'h', 's', 'mu', 'k', 'log_psat', 'h_vap')


@dataclass(frozen=True, eq=False)
class SpeciesTable:
    names: Tuple[str, ...]
    molar_mass: np.ndarray          # kg/mol
    temperature: np.ndarray         # K, strictly increasing
    curves: Mapping[str, np.ndarray]  # name -> (N, n_T)
    condensable: np.ndarray         # bool (N)
    p_min: float = PhysicalConstants.MIN_PRESSURE
    T_min: float = PhysicalConstants.MIN_TEMPERATURE
    gas_constant: np.ndarray = field(init=False)  # J/(kg*K)

    def __post_init__(self):
        names = tuple(self.names)
        n = len(names)
        molar_mass = np.array(self.molar_mass, dtype=float)
        grid = np.array(self.temperature, dtype=float)
        condensable = np.array(self.condensable, dtype=bool)

        if molar_mass.shape != (n,) or condensable.shape != (n,):
            raise ValueError("Species constants must have one entry per species")
        if np.any(molar_mass <= 0):
            raise ValueError("Molar masses must be positive")
        if grid.ndim != 1 or grid.size < 2 or np.any(np.diff(grid) <= 0):
            raise ValueError("Temperature grid must be strictly increasing with at least 2 points")

        curves = {}
        for prop in PROPERTY_NAMES:
            if prop not in self.curves:
                raise ValueError(f"Missing property curve '{prop}'")
            values = np.array(self.curves[prop], dtype=float)
            if values.shape != (n, grid.size):
                raise ValueError(f"Curve '{prop}' has shape {values.shape}, expected {(n, grid.size)}")
            values.setflags(write=False)
            curves[prop] = values

        gas_constant = PhysicalConstants.UNIVERSAL_GAS_CONSTANT / molar_mass
        for arr in (molar_mass, grid, condensable, gas_constant):
            arr.setflags(write=False)

        object.__setattr__(self, 'names', names)
        object.__setattr__(self, 'molar_mass', molar_mass)
        object.__setattr__(self, 'temperature', grid)
        object.__setattr__(self, 'condensable', condensable)
        object.__setattr__(self, 'curves', MappingProxyType(curves))
        object.__setattr__(self, 'gas_constant', gas_constant)

    @property
    def n_species(self) -> int:
        return len(self.names)

    def index(self, species) -> int:
        if isinstance(species, (int, np.integer)):
            return int(species)
        return self.names.index(species)

    def _locate(self, T, extrapolation):
        grid = self.temperature
        i = int(np.clip(np.searchsorted(grid, T, side='right') - 1, 0, grid.size - 2))
        w = (T - grid[i]) / (grid[i + 1] - grid[i])
        if extrapolation == 'nearest':
            w = min(max(w, 0.0), 1.0)
        elif extrapolation != 'linear':
            raise ValueError(f"Unknown extrapolation '{extrapolation}'")
        return i, w

    def species_values(self, prop: str, T: float, extrapolation: str = 'linear') -> np.ndarray:
        """Property of every species at temperature T (vector of length N)."""
        curve = self.curves[prop]
        i, w = self._locate(float(T), extrapolation)
        return curve[:, i] + w * (curve[:, i + 1] - curve[:, i])

    def property_at(self, species, prop: str, T: float, extrapolation: str = 'linear') -> float:
        """Interpolated scalar from one species' curve."""
        curve = self.curves[prop][self.index(species)]
        i, w = self._locate(float(T), extrapolation)
        return float(curve[i] + w * (curve[i + 1] - curve[i]))


def build_default_table(t_min: float = 200.0, t_max: float = 1000.0, step: float = 5.0,
                        species: Sequence[str] = tuple(physics.SPECIES_NAMES)) -> SpeciesTable:
    """
    Tabulate the correlations in physics.py onto a temperature grid.
    """
    grid = np.arange(t_min, t_max + 0.5 * step, step)
    molar_mass = np.array([physics.MOLAR_MASS[sp] for sp in species]) / 1000.0  # kg/mol

    curves = {prop: np.zeros((len(species), grid.size)) for prop in PROPERTY_NAMES}
    for i, sp in enumerate(species):
        M = molar_mass[i]
        curves['cp'][i] = physics.calculate_cp(sp, grid) / M
        curves['h'][i] = physics.calculate_enthalpy(sp, grid) / M
        curves['s'][i] = physics.calculate_entropy(sp, grid) / M
        curves['mu'][i] = physics.calculate_gas_viscosity(sp, grid)
        curves['k'][i] = physics.calculate_thermal_conductivity(sp, grid)
        curves['log_psat'][i] = physics.calculate_log_saturation_pressure(sp, grid)
        curves['h_vap'][i] = physics.calculate_heat_of_vaporization(sp, grid)

    condensable = [sp in physics.CONDENSABLE for sp in species]
    logger.debug(f"Built species table for {list(species)} on {grid.size} points ({t_min}-{t_max} K)")
    return SpeciesTable(names=tuple(species), molar_mass=molar_mass, temperature=grid,
                        curves=curves, condensable=condensable, T_min=float(grid[0]))


def dump_species_table(table: SpeciesTable, path: str) -> None:
    """Persist a table as JSON."""
    data = {
        'temperature': table.temperature.tolist(),
        'p_min': table.p_min,
        'T_min': table.T_min,
        'species': [
            {
                'name': name,
                'molar_mass': float(table.molar_mass[i]),
                'condensable': bool(table.condensable[i]),
                'curves': {prop: table.curves[prop][i].tolist() for prop in PROPERTY_NAMES},
            }
            for i, name in enumerate(table.names)
        ],
    }
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)


def load_species_table(path: str) -> SpeciesTable:
    """
    Load a table written by dump_species_table.

    JSON format:
      temperature: [K, ...]
      p_min, T_min: optional floors
      species: [{name, molar_mass (kg/mol), condensable, curves: {cp, h, s, mu, k, log_psat, h_vap}}]
    """
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    records = data['species']
    curves = {prop: [rec['curves'][prop] for rec in records] for prop in PROPERTY_NAMES}
    table = SpeciesTable(
        names=tuple(rec['name'] for rec in records),
        molar_mass=[rec['molar_mass'] for rec in records],
        temperature=data['temperature'],
        curves=curves,
        condensable=[rec.get('condensable', False) for rec in records],
        p_min=float(data.get('p_min', PhysicalConstants.MIN_PRESSURE)),
        T_min=float(data.get('T_min', data['temperature'][0])),
    )
    logger.info(f"Loaded species table from {path}: {list(table.names)}")
    return table


_DEFAULT_TABLE = None


def default_table() -> SpeciesTable:
    """Shared default table, built on first use."""
    global _DEFAULT_TABLE
    if _DEFAULT_TABLE is None:
        _DEFAULT_TABLE = build_default_table()
    return _DEFAULT_TABLE
