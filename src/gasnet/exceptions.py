class GasNetworkError(RuntimeError):
    """Base class for all gas network errors."""


class ParameterValidationError(GasNetworkError, ValueError):
    """A declared component parameter violates its physical assertion.

    Raised at construction time and never retried.
    """

    def __init__(self, component, parameter, message):
        self.component = component
        self.parameter = parameter
        super().__init__(f"{component}: parameter '{parameter}' {message}")


class RuntimeBoundError(GasNetworkError):
    """A state variable crossed a physical floor during the solve.

    Recoverable: the integrator rejects the step and retries with a smaller one.
    """

    def __init__(self, component, quantity, value, bound, time=None):
        self.component = component
        self.quantity = quantity
        self.value = value
        self.bound = bound
        self.time = time
        super().__init__(self._format())

    def _format(self):
        where = f" at t={self.time:.6g} s" if self.time is not None else ""
        return (f"{self.component}: {self.quantity}={self.value:.6g} "
                f"violates bound {self.bound:.6g}{where}")

    def at_time(self, time):
        """Return a copy stamped with the simulated time."""
        return RuntimeBoundError(self.component, self.quantity, self.value, self.bound, time)


class NonConvergenceError(GasNetworkError):
    """The implicit solve did not reach its residual tolerance."""

    def __init__(self, message, time=None, step_size=None, residual_norm=None, worst_equation=None):
        self.time = time
        self.step_size = step_size
        self.residual_norm = residual_norm
        self.worst_equation = worst_equation
        details = []
        if time is not None:
            details.append(f"t={time:.6g} s")
        if step_size is not None:
            details.append(f"h={step_size:.3g} s")
        if residual_norm is not None:
            details.append(f"max residual={residual_norm:.3e}")
        if worst_equation is not None:
            details.append(f"worst equation '{worst_equation}'")
        suffix = f" ({', '.join(details)})" if details else ""
        super().__init__(f"{message}{suffix}")


class TopologyError(GasNetworkError):
    """Invalid network wiring (domain mismatch, unknown port, non-square system)."""
