"""
Component base class, port domains, parameters, signals and the registry.

A component is a pure function of its view of the global solution:
equations(view) -> (state derivatives, residuals). It returns exactly one
residual per through variable of each of its ports plus one per internal
algebraic variable, which keeps the assembled system square.
"""
import logging
from abc import ABC, abstractmethod
from collections import OrderedDict, namedtuple
from typing import Dict, List, Optional, Tuple

import numpy as np

from .constants import PhysicalConstants
from .exceptions import ParameterValidationError, TopologyError
from .material import MaterialService

logger = logging.getLogger(__name__)


class Domain:
    """
    Physical domain of a conserving port.

    Args:
        across: Names of the potential (node) variables.
        through: Names of the flow variables, positive into the component.
        through_scale: Nominal magnitude of each through variable.
        species_vector: Gas domain; one extra across/through entry per species.
    """

    def __init__(self, name, across, through, through_scale, species_vector=False):
        self.name = name
        self.across = tuple(across)
        self.through = tuple(through)
        self.through_scale = tuple(through_scale)
        self.species_vector = species_vector

    def size(self, n_species: int) -> int:
        return len(self.across) + (n_species if self.species_vector else 0)

    def across_names(self, species) -> List[str]:
        extra = [f"x_{sp}" for sp in species] if self.species_vector else []
        return list(self.across) + extra

    def through_names(self, species) -> List[str]:
        extra = [f"mdot_{sp}" for sp in species] if self.species_vector else []
        return list(self.through) + extra

    def through_scales(self, n_species: int) -> np.ndarray:
        extra = [PhysicalConstants.NOMINAL_MASS_FLOW] * n_species if self.species_vector else []
        return np.array(list(self.through_scale) + extra)

    def __repr__(self):
        return f"Domain({self.name})"


GAS = Domain('gas', ('p', 'T'), ('mdot', 'Phi'),
             (PhysicalConstants.NOMINAL_MASS_FLOW,
              PhysicalConstants.NOMINAL_MASS_FLOW * PhysicalConstants.NOMINAL_ENTHALPY),
             species_vector=True)
THERMAL = Domain('thermal', ('T',), ('Q',), (PhysicalConstants.NOMINAL_HEAT_FLOW,))
TRANSLATIONAL = Domain('translational', ('v',), ('F',), (PhysicalConstants.NOMINAL_FORCE,))
ROTATIONAL = Domain('rotational', ('w',), ('tau',), (PhysicalConstants.NOMINAL_TORQUE,))


class Port:
    def __init__(self, component, name: str, domain: Domain):
        self.component = component
        self.name = name
        self.domain = domain

    @property
    def full_name(self) -> str:
        return f"{self.component.name}.{self.name}"

    def __repr__(self):
        return f"Port({self.full_name}, {self.domain.name})"


class Signal:
    """Constant value or callable of simulated time t."""

    def __init__(self, source):
        if isinstance(source, Signal):
            source = source.source
        self.source = source
        self.is_constant = not callable(source)
        if self.is_constant:
            value = np.asarray(source, dtype=float)
            self._value = float(value) if value.ndim == 0 else value

    def __call__(self, t):
        if self.is_constant:
            return self._value
        return self.source(t)


# --- Parameter validation -------------------------------------------------

Rule = namedtuple('Rule', ['check', 'message'])

POSITIVE = Rule(lambda v: np.all(np.asarray(v) > 0), "must be > 0")
NON_NEGATIVE = Rule(lambda v: np.all(np.asarray(v) >= 0), "must be >= 0")
UNIT_INTERVAL = Rule(lambda v: np.all((np.asarray(v) > 0) & (np.asarray(v) <= 1)), "must lie in (0, 1]")
FRACTION = Rule(lambda v: np.all((np.asarray(v) >= 0) & (np.asarray(v) <= 1)), "must lie in [0, 1]")
GREATER_THAN_ONE = Rule(lambda v: np.all(np.asarray(v) > 1), "must be > 1")
SIGN = Rule(lambda v: v in (1, -1), "must be +1 or -1")


class ParameterSet:
    """Named, unit-carrying parameters validated once at construction."""

    def __init__(self, owner: str):
        self.owner = owner
        self._values = OrderedDict()
        self._units = {}

    def declare(self, name, value, unit='1', rule: Optional[Rule] = None):
        if isinstance(value, (Signal,)) or callable(value):
            stored = value
        else:
            arr = np.asarray(value, dtype=float)
            if not np.all(np.isfinite(arr)):
                raise ParameterValidationError(self.owner, name, f"must be finite, got {value}")
            if rule is not None and not rule.check(arr if arr.ndim else float(arr)):
                raise ParameterValidationError(self.owner, name, f"{rule.message}, got {value}")
            stored = float(arr) if arr.ndim == 0 else arr
        self._values[name] = stored
        self._units[name] = unit
        return stored

    def require(self, name, condition: bool, message: str):
        if not condition:
            raise ParameterValidationError(self.owner, name, message)

    def unit(self, name) -> str:
        return self._units[name]

    def __getitem__(self, name):
        return self._values[name]

    def __contains__(self, name):
        return name in self._values

    def items(self):
        return self._values.items()


# --- Component ------------------------------------------------------------

class Component(ABC):
    """
    Base class of all network elements.

    Subclasses declare ports in __init__ and implement equations(). Storage
    components also list state_names and provide initial_states().
    """
    type_name = None
    state_names: Tuple[str, ...] = ()
    algebraic_names: Tuple[str, ...] = ()
    # states holding mass fractions that sum to one, if any
    fraction_states: Optional[slice] = None

    def __init__(self, name: str, material: MaterialService = None):
        if not name or '.' in name:
            raise ParameterValidationError(name, 'name', "must be a non-empty string without '.'")
        self.name = name
        self.material = material if material is not None else _default_material()
        self.ports: Dict[str, Port] = OrderedDict()
        self.params = ParameterSet(name)

    def add_port(self, name: str, domain: Domain) -> Port:
        port = Port(self, name, domain)
        self.ports[name] = port
        return port

    def port(self, name: str) -> Port:
        try:
            return self.ports[name]
        except KeyError:
            raise TopologyError(f"{self.name} has no port '{name}' (ports: {list(self.ports)})") from None

    def __getitem__(self, name: str) -> Port:
        return self.port(name)

    @property
    def n_states(self) -> int:
        return len(self.state_names)

    @property
    def n_algebraic(self) -> int:
        return len(self.algebraic_names)

    def initial_states(self) -> np.ndarray:
        return np.zeros(0)

    def initial_algebraics(self) -> np.ndarray:
        return np.zeros(self.n_algebraic)

    def state_scales(self) -> np.ndarray:
        return np.ones(self.n_states)

    def guess_across(self, port_name: str) -> Optional[np.ndarray]:
        """Initial guess for the node a port lands on; None defers to others."""
        return None

    def state_bounds(self) -> Tuple[np.ndarray, np.ndarray]:
        """(lower, upper) on the states for the algebraic solvers."""
        return np.full(self.n_states, -np.inf), np.full(self.n_states, np.inf)

    def guess_through(self, port_name: str) -> Optional[np.ndarray]:
        """
        Initial guess of a port's through variables. For gas ports only the
        mass flow is read; the network fills in the enthalpy and species flows
        from the node guess.
        """
        return None

    @abstractmethod
    def equations(self, view) -> Tuple[np.ndarray, np.ndarray]:
        pass

    def check_bounds(self, view) -> None:
        """Raise RuntimeBoundError when an accepted state violates a floor."""
        pass

    def outputs(self, view) -> dict:
        return {}

    def __repr__(self):
        return f"{type(self).__name__}({self.name!r})"


_MATERIAL = None


def _default_material() -> MaterialService:
    global _MATERIAL
    if _MATERIAL is None:
        _MATERIAL = MaterialService()
    return _MATERIAL


# --- Registry -------------------------------------------------------------

_REGISTRY = {}


def register(type_name):
    """Class decorator registering a component type for configuration loading."""
    def decorator(cls):
        _REGISTRY[type_name] = cls
        cls.type_name = type_name
        return cls
    return decorator


def build(type_name, name, **params):
    if type_name not in _REGISTRY:
        raise KeyError(f"Unknown component type '{type_name}'. Registered: {sorted(_REGISTRY)}")
    return _REGISTRY[type_name](name, **params)


def registered_types():
    return sorted(_REGISTRY)
