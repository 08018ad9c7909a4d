"""
Time integration of an assembled network.

Implicit Euler on the index-1 DAE
    dy_d/dt = f(t, y),  0 = g(t, y)
with one nonlinear solve per step, a local error estimate from the change of
the derivative vector, and step halving on rejected or failed steps.
The same implicit step at frozen time relaxes a network towards a steady
state when a direct equilibrium solve fails.
"""
import logging
from dataclasses import dataclass, field
from typing import List

import numpy as np

from .exceptions import NonConvergenceError, ParameterValidationError, RuntimeBoundError
from .network import AssembledSystem
from .solver import LeastSquaresSolver, NewtonSolver

logger = logging.getLogger(__name__)

# Pseudo-time step growth and cap used by Integrator.relax
PSEUDO_GROWTH = 4.0
PSEUDO_MAX_STEP = 1.0e4  # s


@dataclass(frozen=True)
class SolverSettings:
    method: str = 'newton'          # 'newton' | 'trf'
    tolerance: float = 1e-8         # max scaled residual
    max_iterations: int = 30
    damping: float = 1.0
    fd_step: float = 1e-7
    max_retries: int = 10           # halvings after a failed step before giving up
    initial_step: float = 1e-3      # s
    min_step: float = 1e-10         # s
    max_step: float = 1.0           # s
    rtol: float = 1e-3
    atol: float = 1e-6              # relative to the state scales
    growth: float = 2.0

    def __post_init__(self):
        if self.method not in ('newton', 'trf'):
            raise ParameterValidationError('SolverSettings', 'method', f"must be 'newton' or 'trf', got {self.method!r}")
        for name in ('tolerance', 'fd_step', 'initial_step', 'min_step', 'max_step', 'rtol', 'atol'):
            if not getattr(self, name) > 0:
                raise ParameterValidationError('SolverSettings', name, "must be > 0")
        if self.min_step > self.max_step:
            raise ParameterValidationError('SolverSettings', 'min_step', "must not exceed max_step")
        if self.growth <= 1:
            raise ParameterValidationError('SolverSettings', 'growth', "must be > 1")

    def build_solver(self):
        if self.method == 'trf':
            return LeastSquaresSolver(tol=self.tolerance, max_nfev=50 * self.max_iterations)
        return NewtonSolver(tol=self.tolerance, max_iter=self.max_iterations, damper=self.damping,
                            epsilon=self.fd_step)


@dataclass
class SimulationResult:
    """Accepted time points and solution vectors of a run."""
    system: AssembledSystem
    t: List[float] = field(default_factory=list)
    y: List[np.ndarray] = field(default_factory=list)

    def append(self, t, y):
        self.t.append(float(t))
        self.y.append(np.array(y, dtype=float))

    @property
    def times(self) -> np.ndarray:
        return np.array(self.t)

    @property
    def solution(self) -> np.ndarray:
        return np.vstack(self.y)

    @property
    def final(self) -> np.ndarray:
        return self.y[-1]

    def outputs(self, name) -> dict:
        """Output histories of one component, stacked along time."""
        records = [self.system.outputs(name, t, y) for t, y in zip(self.t, self.y)]
        return {key: np.array([r[key] for r in records]) for key in records[0]}

    def node_state(self, port) -> list:
        return [self.system.node_state(port, y) for y in self.y]

    def states(self, name) -> np.ndarray:
        lay = self.system.layouts[name]
        return self.solution[:, lay.states]


def _max_abs(values) -> float:
    return float(np.max(np.abs(values))) if np.size(values) else 0.0


def solve_steady_state(system: AssembledSystem, settings: SolverSettings = None, y0=None, t=0.0):
    """
    Solve f(t, y) = 0 and g(t, y) = 0 for an equilibrium of the network.

    The direct solve works on AssembledSystem.steady_residual within the
    variable bounds. If it fails, the network is relaxed in pseudo-time from
    y0 and the result is polished by Newton, then by least squares.

    Raises NonConvergenceError if the residual tolerance is not met.
    """
    settings = settings or SolverSettings()
    y0 = system.initial_guess() if y0 is None else np.asarray(y0, dtype=float)
    bounds = system.bounds()
    sparsity = system.sparsity()

    def func(y):
        return system.steady_residual(t, y)

    logger.info(f"Solving steady state ({system.n_total} unknowns, method={settings.method})")
    sol = settings.build_solver().solve(func, y0, bounds=bounds, sparsity=sparsity)
    if not sol.success:
        logger.warning(f"Direct steady-state solve failed ({sol.message}); relaxing in pseudo-time")
        sol = _relaxed_steady_state(system, settings, y0, t, func, bounds, sparsity)
    if not sol.success:
        worst = None
        if sol.fun.size == system.n_total:
            worst = system.diagnose(t, sol.x, scaled_residual=sol.fun)
        raise NonConvergenceError(f"Steady state not found: {sol.message}", time=t,
                                  residual_norm=_max_abs(sol.fun), worst_equation=worst)
    system.check_bounds(t, sol.x)
    logger.info(f"Steady state converged ({sol.message}, nfev={sol.nfev})")
    return sol.x


def _relaxed_steady_state(system, settings, y0, t, func, bounds, sparsity):
    try:
        start = Integrator(system, settings, t0=t, y0=y0).relax()
    except (NonConvergenceError, RuntimeBoundError) as err:
        logger.warning(f"Pseudo-transient continuation stopped: {err}")
        start = y0
    else:
        sol = settings.build_solver().solve(func, start, bounds=bounds, sparsity=sparsity)
        if sol.success:
            return sol
        logger.warning(f"Newton polish after relaxation failed ({sol.message})")
    logger.warning("Falling back to least squares")
    solver = LeastSquaresSolver(tol=settings.tolerance, max_nfev=100 * settings.max_iterations)
    return solver.solve(func, start, bounds=bounds, sparsity=sparsity)


class Integrator:
    """
    Steps an AssembledSystem in time.

    Usage:
        integ = Integrator(system)
        integ.initialize()
        result = integ.run(t_end=1.0)
    """

    def __init__(self, system: AssembledSystem, settings: SolverSettings = None, t0=0.0, y0=None):
        self.system = system
        self.settings = settings or SolverSettings()
        self.t = float(t0)
        self.y = system.initial_guess() if y0 is None else np.array(y0, dtype=float)
        self.h = self.settings.initial_step
        self._solver = self.settings.build_solver()
        self._sparsity = system.sparsity()
        self._scales = system.state_scales
        self._bounds = system.bounds()
        self._initialized = False

    # --- Initialisation --------------------------------------------------

    def initialize(self) -> np.ndarray:
        """Solve g(t0, y) = 0 for the algebraic unknowns with the states held fixed."""
        system = self.system
        n_d = system.n_states
        y_d = self.y[:n_d].copy()
        system.check_states(self.t, self.y)

        def func(z):
            _, g = system.evaluate(self.t, np.concatenate([y_d, z]))
            return g

        lower, upper = self._bounds
        sol = self._solver.solve(func, self.y[n_d:], bounds=(lower[n_d:], upper[n_d:]),
                                 sparsity=self._sparsity[n_d:, n_d:])
        y = np.concatenate([y_d, sol.x])
        if not sol.success:
            worst = system.diagnose(self.t, y, scaled_residual=np.concatenate([np.zeros(n_d), sol.fun]))
            raise NonConvergenceError(f"Consistent initialisation failed: {sol.message}", time=self.t,
                                      residual_norm=_max_abs(sol.fun), worst_equation=worst)
        system.check_bounds(self.t, y)
        self.y = y
        self._initialized = True
        logger.info(f"Initialised network at t={self.t:.6g} s ({sol.message})")
        return y

    # --- Stepping --------------------------------------------------------

    def _implicit_step(self, h, t_new=None):
        """
        One implicit Euler step of size h from (t, y); returns the new y.
        t_new defaults to t + h; relax() holds it at t.
        """
        system = self.system
        n_d = system.n_states
        t_new = self.t + h if t_new is None else t_new
        y_prev = self.y[:n_d]

        def func(y):
            f, g = system.evaluate(t_new, y)
            return np.concatenate([(y[:n_d] - y_prev - h * f) / self._scales, g])

        sol = self._solver.solve(func, self.y, bounds=self._bounds, sparsity=self._sparsity)
        if not sol.success:
            raise NonConvergenceError(f"Step solve failed: {sol.message}", time=t_new, step_size=h,
                                      residual_norm=_max_abs(sol.fun))
        system.check_bounds(t_new, sol.x)
        return sol.x

    def _error_ratio(self, h, f_old, f_new, y_new):
        """Scaled local error estimate 0.5*h*|f_new - f_old|; accept when <= 1."""
        n_d = self.system.n_states
        if n_d == 0:
            return 0.0
        err = 0.5 * h * np.abs(f_new - f_old)
        tol = self.settings.atol * self._scales + self.settings.rtol * np.abs(y_new[:n_d])
        return float(np.max(err / tol))

    def step(self, h=None):
        """
        Advance by one accepted step; returns the step size taken.

        Failed solves and bound violations halve the step up to max_retries
        times; error rejections halve it down to min_step.
        """
        if not self._initialized:
            self.initialize()
        cfg = self.settings
        h = min(h or self.h, cfg.max_step)
        f_old, _ = self.system.evaluate(self.t, self.y)
        retries = 0
        while True:
            try:
                y_new = self._implicit_step(h)
            except (NonConvergenceError, RuntimeBoundError) as err:
                retries += 1
                if retries > cfg.max_retries or h / 2.0 < cfg.min_step:
                    self._fail(err, h)
                logger.warning(f"Step rejected at t={self.t:.6g} s (h={h:.3g} s): {err}; retrying with h/2")
                h /= 2.0
                continue

            f_new, _ = self.system.evaluate(self.t + h, y_new)
            ratio = self._error_ratio(h, f_old, f_new, y_new)
            if ratio > 1.0 and h / 2.0 >= cfg.min_step:
                logger.debug(f"Error ratio {ratio:.2f} at t={self.t:.6g} s, h={h:.3g} s; shrinking")
                h = max(h * max(0.2, 0.9 / np.sqrt(ratio)), cfg.min_step)
                continue
            break

        self.t += h
        self.y = y_new
        factor = cfg.growth if ratio == 0 else min(cfg.growth, max(1.0, 0.9 / np.sqrt(ratio)))
        self.h = min(h * factor, cfg.max_step)
        logger.debug(f"t={self.t:.6g} s accepted (h={h:.3g} s, error ratio={ratio:.2f})")
        return h

    def relax(self, max_steps=100) -> np.ndarray:
        """
        Pseudo-transient continuation at frozen time.

        Takes implicit Euler steps of growing size without advancing t until
        the scaled state derivatives fall below the solver tolerance, and
        returns the settled y. Failed steps are halved down to min_step.
        """
        if not self._initialized:
            self.initialize()
        cfg = self.settings
        h = cfg.initial_step
        residual = np.inf
        for k in range(max_steps):
            try:
                y_new = self._implicit_step(h, t_new=self.t)
            except (NonConvergenceError, RuntimeBoundError) as err:
                if h / 2.0 < cfg.min_step:
                    raise NonConvergenceError(f"Pseudo-transient continuation stalled: {err}", time=self.t,
                                              step_size=h) from err
                h /= 2.0
                continue
            self.y = y_new
            f, _ = self.system.evaluate(self.t, y_new)
            residual = _max_abs(f / self._scales)
            logger.debug(f"Pseudo step {k}: h={h:.3g} s, max scaled derivative {residual:.3e}")
            if residual < cfg.tolerance:
                logger.info(f"Pseudo-transient continuation settled after {k + 1} steps (h={h:.3g} s)")
                return y_new
            h = min(h * PSEUDO_GROWTH, PSEUDO_MAX_STEP)
        raise NonConvergenceError("Pseudo-transient continuation did not settle", time=self.t, step_size=h,
                                  residual_norm=residual)

    def _fail(self, err, h):
        t_fail = self.t + h
        worst = self.system.diagnose(t_fail, self.y)
        if isinstance(err, RuntimeBoundError):
            raise err.at_time(t_fail)
        raise NonConvergenceError(f"Integration failed after {self.settings.max_retries} retries", time=t_fail,
                                  step_size=h, residual_norm=err.residual_norm, worst_equation=worst)

    def run(self, t_end, max_steps=100000) -> SimulationResult:
        """Integrate to t_end, recording every accepted step."""
        if not self._initialized:
            self.initialize()
        result = SimulationResult(self.system)
        result.append(self.t, self.y)
        logger.info(f"Simulating t={self.t:.6g} -> {t_end:.6g} s")
        n = 0
        while self.t < t_end - 1e-12 * max(1.0, abs(t_end)):
            if n >= max_steps:
                raise NonConvergenceError(f"Exceeded {max_steps} steps", time=self.t, step_size=self.h)
            self.step(min(self.h, t_end - self.t))
            result.append(self.t, self.y)
            n += 1
        logger.info(f"Simulation finished: {n} steps, t={self.t:.6g} s")
        return result
