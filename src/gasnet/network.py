"""
Network assembly.

Ports are aliased onto shared nodes with a union-find pass performed once in
assemble(). The assembled system owns an index-addressed layout of the global
solution vector

    y = [ component states | node potentials | port flows | component algebraics ]

and evaluates (state derivatives f, algebraic residuals g) for any y.
"""
import logging
from collections import OrderedDict
from typing import Dict, List, Optional

import numpy as np
from scipy.sparse import lil_matrix

from .component import GAS, Component, Port, _default_material
from .constants import PhysicalConstants
from .exceptions import RuntimeBoundError, TopologyError
from .state import GasFlow, GasState

logger = logging.getLogger(__name__)


class Network:
    """Graph of components whose ports are aliased onto shared nodes."""

    def __init__(self, material=None):
        self.material = material if material is not None else _default_material()
        self.components: Dict[str, Component] = OrderedDict()
        self._parent: Dict[Port, Port] = {}

    def add(self, component: Component) -> Component:
        if component.name in self.components:
            raise TopologyError(f"Duplicate component name '{component.name}'")
        if component.material.table is not self.material.table:
            raise TopologyError(f"{component.name} uses a different species table than the network")
        self.components[component.name] = component
        for port in component.ports.values():
            self._parent[port] = port
        return component

    def component(self, name: str) -> Component:
        try:
            return self.components[name]
        except KeyError:
            raise TopologyError(f"Unknown component '{name}'") from None

    def resolve_port(self, ref) -> Port:
        """Accept a Port or a 'component.port' string."""
        if isinstance(ref, Port):
            if ref not in self._parent:
                raise TopologyError(f"{ref.full_name} belongs to a component not added to the network")
            return ref
        comp_name, _, port_name = str(ref).partition('.')
        return self.component(comp_name).port(port_name)

    def _find(self, port: Port) -> Port:
        root = port
        while self._parent[root] is not root:
            root = self._parent[root]
        while self._parent[port] is not root:
            self._parent[port], port = root, self._parent[port]
        return root

    def connect(self, *refs):
        """Alias two or more ports onto one node."""
        ports = [self.resolve_port(r) for r in refs]
        if len(ports) < 2:
            raise TopologyError("connect needs at least two ports")
        domain = ports[0].domain
        for port in ports[1:]:
            if port.domain is not domain:
                raise TopologyError(f"Cannot connect {ports[0].full_name} ({domain.name}) "
                                    f"to {port.full_name} ({port.domain.name})")
        root = self._find(ports[0])
        for port in ports[1:]:
            other = self._find(port)
            if other is not root:
                self._parent[other] = root

    def add_pipe_line(self, name, length, n_segments, **pipe_params):
        """
        Chain n_segments Pipe components covering length; returns the segment list.
        Segment i is named f"{name}_{i}"; its ports A/B face upstream/downstream.
        """
        from .grid_service import PipeSegmenter, SegmentConfig
        from .volumes import Pipe

        lengths, _ = PipeSegmenter(SegmentConfig(total_length=length, n_segments=n_segments,
                                                 inlet_length=pipe_params.pop('inlet_length', None))).generate()
        segments = []
        for i, dz in enumerate(lengths):
            seg = self.add(Pipe(f"{name}_{i}", length=float(dz), material=self.material, **pipe_params))
            if segments:
                self.connect(segments[-1].port('B'), seg.port('A'))
            segments.append(seg)
        return segments

    def assemble(self) -> 'AssembledSystem':
        groups: Dict[Port, List[Port]] = OrderedDict()
        for comp in self.components.values():
            for port in comp.ports.values():
                groups.setdefault(self._find(port), []).append(port)
        system = AssembledSystem(list(self.components.values()), list(groups.values()), self.material)
        logger.info(f"Assembled network: {len(self.components)} components, {len(system.nodes)} nodes, "
                    f"{system.n_states} states, {system.n_algebraic} algebraic unknowns")
        return system


class Node:
    """Shared potential of every port aliased onto it."""

    def __init__(self, index, ports, n_species):
        self.index = index
        self.ports = ports
        self.domain = ports[0].domain
        self.size = self.domain.size(n_species)
        self.offset = 0

    @property
    def label(self) -> str:
        return f"node{self.index}[{','.join(p.full_name for p in self.ports)}]"


class _ComponentLayout:
    def __init__(self):
        self.states = slice(0, 0)
        self.algebraics = slice(0, 0)
        self.residuals = slice(0, 0)
        self.across = {}
        self.through = {}


class ComponentView:
    """Read access of one component to the global solution vector."""

    def __init__(self, component, layout, t, y):
        self.component = component
        self.material = component.material
        self.t = t
        self._layout = layout
        self._y = y

    @property
    def states(self) -> np.ndarray:
        return self._y[self._layout.states]

    @property
    def algebraics(self) -> np.ndarray:
        return self._y[self._layout.algebraics]

    def across(self, port: str) -> np.ndarray:
        return self._y[self._layout.across[port]]

    def through(self, port: str) -> np.ndarray:
        return self._y[self._layout.through[port]]

    def gas(self, port: str) -> GasState:
        return GasState.from_array(self.across(port))

    def flow(self, port: str) -> GasFlow:
        return GasFlow.from_array(self.through(port))


class AssembledSystem:
    """
    Global residual system of a network.

    evaluate(t, y) returns (f, g): f are the derivatives of the component
    states, g the node conservation residuals followed by the component
    residuals, all normalised by nominal scales.
    """

    def __init__(self, components, port_groups, material):
        self.components = components
        self.material = material
        self.n_species = material.n_species
        self.nodes = [Node(i, ports, self.n_species) for i, ports in enumerate(port_groups)]
        self._node_of: Dict[Port, Node] = {p: node for node in self.nodes for p in node.ports}
        self._build_layout()

    # --- Layout ----------------------------------------------------------

    def _build_layout(self):
        self.layouts: Dict[str, _ComponentLayout] = OrderedDict()
        n_d = 0
        for comp in self.components:
            lay = _ComponentLayout()
            lay.states = slice(n_d, n_d + comp.n_states)
            n_d += comp.n_states
            self.layouts[comp.name] = lay
        self.n_states = n_d

        offset = n_d
        for node in self.nodes:
            node.offset = offset
            offset += node.size
        self._port_through = {}
        for comp in self.components:
            lay = self.layouts[comp.name]
            for name, port in comp.ports.items():
                node = self._node_of[port]
                lay.across[name] = slice(node.offset, node.offset + node.size)
                size = port.domain.size(self.n_species)
                lay.through[name] = slice(offset, offset + size)
                self._port_through[port] = lay.through[name]
                offset += size
        for comp in self.components:
            lay = self.layouts[comp.name]
            lay.algebraics = slice(offset, offset + comp.n_algebraic)
            offset += comp.n_algebraic
        self.n_total = offset
        self.n_algebraic = offset - n_d

        row = n_d + sum(node.size for node in self.nodes)
        for comp in self.components:
            lay = self.layouts[comp.name]
            n_res = sum(p.domain.size(self.n_species) for p in comp.ports.values()) + comp.n_algebraic
            lay.residuals = slice(row, row + n_res)
            row += n_res
        if row != self.n_total:
            raise TopologyError(f"System is not square: {row} equations for {self.n_total} unknowns")

        self._node_scales = [node.domain.through_scales(self.n_species) for node in self.nodes]
        self.state_scales = np.concatenate(
            [np.asarray(c.state_scales(), dtype=float) for c in self.components] + [np.zeros(0)])

        # (row, columns) of the mass-fraction closure of each volume
        self._closures = []
        for comp in self.components:
            fs = comp.fraction_states
            if fs is None:
                continue
            start = self.layouts[comp.name].states.start
            cols = slice(start + fs.start, start + fs.stop)
            self._closures.append((cols.stop - 1, cols))

    def bounds(self):
        """
        Solver bounds (lower, upper) on y: pressure and temperature floors and
        mass fractions in [0, 1] for gas nodes and for component states.
        """
        table = self.material.table
        lower = np.full(self.n_total, -np.inf)
        upper = np.full(self.n_total, np.inf)
        for node in self.nodes:
            if node.domain is not GAS:
                continue
            lower[node.offset: node.offset + 2] = table.p_min, table.T_min
            lower[node.offset + 2: node.offset + node.size] = 0.0
            upper[node.offset + 2: node.offset + node.size] = 1.0
        for comp in self.components:
            lo, hi = comp.state_bounds()
            lay = self.layouts[comp.name]
            lower[lay.states] = lo
            upper[lay.states] = hi
        return lower, upper

    def view(self, component, t, y) -> ComponentView:
        return ComponentView(component, self.layouts[component.name], t, y)

    def split(self, y):
        return y[:self.n_states], y[self.n_states:]

    # --- Evaluation ------------------------------------------------------

    def evaluate(self, t, y):
        y = np.asarray(y, dtype=float)
        f = np.zeros(self.n_states)
        g = np.zeros(self.n_algebraic)
        n_d = self.n_states

        # 1. Node conservation: sum of incident through variables is zero
        for node, scale in zip(self.nodes, self._node_scales):
            total = np.zeros(node.size)
            for port in node.ports:
                total += y[self._port_through[port]]
            g[node.offset - n_d: node.offset - n_d + node.size] = total / scale

        # 2. Component equations
        for comp in self.components:
            lay = self.layouts[comp.name]
            derivs, res = comp.equations(ComponentView(comp, lay, t, y))
            derivs = np.asarray(derivs, dtype=float)
            res = np.asarray(res, dtype=float)
            if derivs.size != comp.n_states or res.size != lay.residuals.stop - lay.residuals.start:
                raise TopologyError(f"{comp.name} returned {derivs.size} derivatives/{res.size} residuals, "
                                    f"expected {comp.n_states}/{lay.residuals.stop - lay.residuals.start}")
            f[lay.states] = derivs
            g[lay.residuals.start - n_d: lay.residuals.stop - n_d] = res
        return f, g

    def steady_residual(self, t, y) -> np.ndarray:
        """
        Scaled [f; g] for an equilibrium solve.

        f = 0 fixes the species and energy inflows of a volume but not the sum
        of its mass fractions, which only the transient preserves. The last
        fraction row of every volume is replaced by sum(x) - 1; together with
        the other rows it still implies f = 0.
        """
        y = np.asarray(y, dtype=float)
        f, g = self.evaluate(t, y)
        r = f / self.state_scales
        for row, cols in self._closures:
            r[row] = np.sum(y[cols]) - 1.0
        return np.concatenate([r, g])

    def sparsity(self):
        """
        Dependency pattern of [f; g] on y, from the slices each component and
        node reads and writes. Returned as a scipy.sparse CSR matrix.
        """
        pattern = lil_matrix((self.n_total, self.n_total), dtype=int)
        for node in self.nodes:
            rows = range(node.offset, node.offset + node.size)
            for port in node.ports:
                sl = self._port_through[port]
                for k, r in enumerate(rows):
                    pattern[r, sl.start + k] = 1
        for comp in self.components:
            lay = self.layouts[comp.name]
            cols = list(range(lay.states.start, lay.states.stop))
            cols += list(range(lay.algebraics.start, lay.algebraics.stop))
            for name in comp.ports:
                cols += list(range(lay.across[name].start, lay.across[name].stop))
                cols += list(range(lay.through[name].start, lay.through[name].stop))
            rows = list(range(lay.states.start, lay.states.stop))
            rows += list(range(lay.residuals.start, lay.residuals.stop))
            for r in rows:
                pattern[r, cols] = 1
        return pattern.tocsr()

    def equation_labels(self) -> List[str]:
        labels = []
        for comp in self.components:
            labels += [f"{comp.name}.d{s}/dt" for s in comp.state_names]
        species = self.material.table.names
        for node in self.nodes:
            labels += [f"{node.label}.sum({n})" for n in node.domain.through_names(species)]
        for comp in self.components:
            lay = self.layouts[comp.name]
            labels += [f"{comp.name}.r{k}" for k in range(lay.residuals.stop - lay.residuals.start)]
        return labels

    # --- Initial guess ---------------------------------------------------

    def initial_guess(self) -> np.ndarray:
        y = np.zeros(self.n_total)
        guessed = set()
        for comp in self.components:
            lay = self.layouts[comp.name]
            y[lay.states] = comp.initial_states()
            y[lay.algebraics] = comp.initial_algebraics()
            for name, port in comp.ports.items():
                guess = comp.guess_through(name)
                if guess is not None:
                    y[lay.through[name]] = guess
                    guessed.add(port)
        for node in self.nodes:
            y[node.offset: node.offset + node.size] = self._node_guess(node)
        for node in self.nodes:
            self._complete_flow_guess(node, y, guessed)
        return y

    def _complete_flow_guess(self, node, y, guessed):
        """
        Guessed gas flows carry the node enthalpy and composition with their
        mass flow; a single unguessed port of a node takes the balance of the
        others.
        """
        if node.domain is GAS:
            state = GasState.from_array(y[node.offset: node.offset + node.size])
            h = self.material.enthalpy(state.T, state.x)
            for port in node.ports:
                if port in guessed:
                    sl = self._port_through[port]
                    mdot = y[sl.start]
                    y[sl] = GasFlow(mdot, mdot * h, mdot * state.x).to_array()
        open_ports = [p for p in node.ports if p not in guessed]
        if len(open_ports) == 1 and len(node.ports) > 1:
            total = np.zeros(node.size)
            for port in node.ports:
                if port in guessed:
                    total += y[self._port_through[port]]
            y[self._port_through[open_ports[0]]] = -total
            guessed.add(open_ports[0])

    def _node_guess(self, node) -> np.ndarray:
        best, best_priority = None, -1
        for port in node.ports:
            comp = port.component
            guess = comp.guess_across(port.name)
            priority = getattr(comp, 'guess_priority', 0)
            if guess is not None and priority > best_priority:
                best, best_priority = guess, priority
        if best is not None:
            return np.asarray(best, dtype=float)
        if node.domain is GAS:
            return GasState(PhysicalConstants.DEFAULT_PRESSURE, PhysicalConstants.DEFAULT_TEMPERATURE,
                            np.array(PhysicalConstants.DEFAULT_COMPOSITION)).to_array()
        if node.domain.name == 'thermal':
            return np.array([PhysicalConstants.DEFAULT_TEMPERATURE])
        return np.zeros(node.size)

    # --- Checks and outputs ----------------------------------------------

    def check_bounds(self, t, y):
        """Raise RuntimeBoundError if an accepted solution violates a floor."""
        table = self.material.table
        for node in self.nodes:
            if node.domain is not GAS:
                continue
            state = GasState.from_array(y[node.offset: node.offset + node.size])
            if state.p < table.p_min:
                raise RuntimeBoundError(node.label, 'p', state.p, table.p_min, t)
            if state.T < table.T_min:
                raise RuntimeBoundError(node.label, 'T', state.T, table.T_min, t)
            if state.fraction_error > PhysicalConstants.FRACTION_TOLERANCE:
                raise RuntimeBoundError(node.label, 'sum(x)', float(np.sum(state.x)), 1.0, t)
        self.check_states(t, y)
        self._check_caps(y)

    def check_states(self, t, y):
        """Component bound checks alone; they read only the component states."""
        for comp in self.components:
            try:
                comp.check_bounds(self.view(comp, t, y))
            except RuntimeBoundError as err:
                raise err.at_time(t) from None

    def _check_caps(self, y):
        # Caps are not constrained to zero flow; report when one carries any.
        for comp in self.components:
            if not getattr(comp, 'blocks_flow', False):
                continue
            mdot = float(self.view(comp, 0.0, y).through('A')[0])
            if abs(mdot) > PhysicalConstants.TOLERANCE_SMALL:
                logger.warning(f"{comp.name}: {mdot:.3e} kg/s flows through a cap; "
                               f"the node is not a dead end")

    def outputs(self, name, t, y) -> dict:
        comp = next((c for c in self.components if c.name == name), None)
        if comp is None:
            raise TopologyError(f"Unknown component '{name}'")
        return comp.outputs(self.view(comp, t, y))

    def node_of(self, port: Port) -> Node:
        return self._node_of[port]

    def node_state(self, port: Port, y):
        """Potential of the node a port is connected to (GasState for gas ports)."""
        node = self._node_of[port]
        values = np.asarray(y)[node.offset: node.offset + node.size]
        if node.domain is GAS:
            return GasState.from_array(values)
        return values.copy()

    def port_flow(self, port: Port, y):
        values = np.asarray(y)[self._port_through[port]]
        if port.domain is GAS:
            return GasFlow.from_array(values)
        return values.copy()

    def diagnose(self, t, y, top: int = 5, scaled_residual: Optional[np.ndarray] = None):
        """Log the worst equations of a failed solve."""
        if scaled_residual is None:
            f, g = self.evaluate(t, y)
            scaled_residual = np.concatenate([f, g])
        labels = self.equation_labels()
        order = np.argsort(-np.abs(scaled_residual))[:top]
        logger.error(f"--- Network Diagnostic (t={t:.6g} s) ---")
        for k in order:
            logger.error(f"  {labels[k]}: {scaled_residual[k]:.3e}")
        return labels[order[0]] if len(order) else None
