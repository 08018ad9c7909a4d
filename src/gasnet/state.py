from dataclasses import dataclass
import numpy as np

from .constants import PhysicalConstants
from .exceptions import ParameterValidationError


@dataclass
class GasState:
    """
    Thermodynamic state of a gas node or control volume.

    Gas port across vector layout: [p, T, x_1 .. x_N]
    """
    p: float               # Pa
    T: float               # K
    x: np.ndarray          # mass fractions, order of the species table

    @property
    def n_species(self) -> int:
        return len(self.x)

    @property
    def fraction_error(self) -> float:
        return abs(float(np.sum(self.x)) - 1.0)

    def copy(self):
        return GasState(p=self.p, T=self.T, x=np.array(self.x, dtype=float))

    def to_array(self) -> np.ndarray:
        """Serialize to solver array [p, T, x...]"""
        return np.concatenate([[self.p, self.T], self.x])

    @classmethod
    def from_array(cls, arr: np.ndarray):
        """Deserialize from solver array"""
        return cls(p=float(arr[0]), T=float(arr[1]), x=np.asarray(arr[2:], dtype=float))

    def mole_fractions(self, material) -> np.ndarray:
        return material.mole_fractions(self.x)

    def density(self, material) -> float:
        return material.density(self.p, self.T, self.x)


@dataclass
class GasFlow:
    """
    Branch flow set of a gas port, signed positive into the component.

    Gas port through vector layout: [mdot, Phi, mdot_1 .. mdot_N]
    """
    mdot: float            # kg/s
    Phi: float             # W
    mdot_i: np.ndarray     # kg/s per species

    def to_array(self) -> np.ndarray:
        return np.concatenate([[self.mdot, self.Phi], self.mdot_i])

    @classmethod
    def from_array(cls, arr: np.ndarray):
        return cls(mdot=float(arr[0]), Phi=float(arr[1]), mdot_i=np.asarray(arr[2:], dtype=float))


def composition_converter(basis, owner):
    """
    Resolve the composition entry mode ('mass' or 'mole') once.

    Returns a callable (values, material) -> mass fractions.
    """
    if basis == 'mass':
        return lambda values, material: np.asarray(values, dtype=float).copy()
    if basis == 'mole':
        return lambda values, material: material.mass_fractions(values)
    raise ParameterValidationError(owner, 'composition_basis', f"must be 'mass' or 'mole', got {basis!r}")


def normalize_composition(values, basis, material, owner, parameter='composition'):
    """
    Validate a composition entered by mass or by mole and return mass fractions.

    Raises ParameterValidationError when a fraction is outside [0, 1] or the
    sum differs from 1 by more than the fraction tolerance.
    """
    convert = composition_converter(basis, owner)
    arr = np.asarray(values, dtype=float)
    if arr.shape != (material.n_species,):
        raise ParameterValidationError(owner, parameter,
                                       f"must have {material.n_species} entries, got {arr.shape}")
    if np.any(arr < 0.0) or np.any(arr > 1.0):
        raise ParameterValidationError(owner, parameter, "entries must lie in [0, 1]")
    if abs(np.sum(arr) - 1.0) > PhysicalConstants.FRACTION_TOLERANCE:
        raise ParameterValidationError(owner, parameter,
                                       f"must sum to 1 within {PhysicalConstants.FRACTION_TOLERANCE}, "
                                       f"got {np.sum(arr):.8f}")
    return convert(arr, material)
