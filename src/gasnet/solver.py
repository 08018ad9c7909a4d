import numpy as np
import logging
from scipy.optimize import least_squares

logger = logging.getLogger(__name__)


def column_groups(sparsity):
    """
    Greedy grouping of structurally orthogonal Jacobian columns.

    Columns in one group share no nonzero row, so a single perturbed
    evaluation recovers all of them.
    """
    csc = sparsity.tocsc()
    n = csc.shape[1]
    groups = []
    group_rows = []
    for j in range(n):
        rows = set(csc.indices[csc.indptr[j]:csc.indptr[j + 1]])
        for k, used in enumerate(group_rows):
            if not (rows & used):
                groups[k].append(j)
                used |= rows
                break
        else:
            groups.append([j])
            group_rows.append(set(rows))
    return [np.array(g) for g in groups]


def evaluate_residual(func, x):
    """
    func(x) as a float array, or None when the trial point is not evaluable
    (arithmetic or domain error, or a non-finite entry).
    """
    try:
        F = np.asarray(func(x), dtype=float)
    except (ArithmeticError, ValueError) as err:
        logger.debug(f"Residual evaluation failed: {err!r}")
        return None
    if not np.all(np.isfinite(F)):
        return None
    return F


class NewtonSolver:
    """
    A manual implementation of the Newton-Raphson method for solving systems of nonlinear equations.
    Supports bounded variables, damped updates with backtracking and a sparse
    finite-difference Jacobian.

    A trial point is only accepted if it reduces the residual norm; when no
    damping factor down to min_damping does, the solve stops and reports
    failure at the last accepted point.
    """
    def __init__(self, tol=1e-8, max_iter=50, damper=1.0, epsilon=1e-7, min_damping=1.0 / 1024):
        self.tol = tol
        self.max_iter = max_iter
        self.damper = damper
        self.epsilon = epsilon  # Step size for finite difference Jacobian
        self.min_damping = min_damping

    def jacobian(self, func, x, F, groups=None, sparsity=None, upper=None):
        """
        Forward-difference Jacobian, (J, nfev). Steps point away from an
        active upper bound and are reversed once if the perturbed point cannot
        be evaluated; J is None if neither direction can.
        """
        n = len(x)
        J = np.zeros((len(F), n))
        if groups is None:
            groups = [np.array([j]) for j in range(n)]
        nfev = 0
        for cols in groups:
            steps = self.epsilon * np.maximum(np.abs(x[cols]), 1.0)  # Relative step size
            if upper is not None:
                steps = np.where(x[cols] + steps > upper[cols], -steps, steps)
            F_perturbed = None
            for direction in (1.0, -1.0):
                x_perturbed = x.copy()
                x_perturbed[cols] += direction * steps
                F_perturbed = evaluate_residual(func, x_perturbed)
                nfev += 1
                if F_perturbed is not None:
                    steps = direction * steps
                    break
            if F_perturbed is None:
                return None, nfev
            dF = F_perturbed - F
            if len(cols) == 1:
                J[:, cols[0]] = dF / steps[0]
                continue
            for j, step in zip(cols, steps):
                rows = sparsity.indices[sparsity.indptr[j]:sparsity.indptr[j + 1]]
                J[rows, j] = dF[rows] / step
        return J, nfev

    def solve(self, func, x0, bounds=None, sparsity=None):
        """
        Solves func(x) = 0 starting from x0.

        Args:
            func: Callable that takes x and returns residuals array.
            x0: Initial guess array.
            bounds: Tuple (lower, upper) of arrays.
            sparsity: Optional scipy.sparse dependency pattern of func on x.

        Returns:
            SolverResult with .x, .success, .message, .nit, .nfev, .cost
        """
        x = np.array(x0, dtype=float)
        groups = None
        if sparsity is not None:
            sparsity = sparsity.tocsc()
            groups = column_groups(sparsity)

        # Initial bounds check
        lower = upper = None
        if bounds:
            lower, upper = (np.broadcast_to(np.asarray(b, dtype=float), x.shape) for b in bounds)
            x = np.clip(x, lower, upper)

        F = evaluate_residual(func, x)
        nfev = 1
        if F is None:
            return SolverResult(x, False, "Non-finite residual at iter 0", 0, nfev)
        for k in range(self.max_iter):
            # 1. Check Residuals
            max_res = np.max(np.abs(F)) if F.size else 0.0
            if max_res < self.tol:
                return SolverResult(x, True, f"Converged in {k} iterations", k, nfev, F)

            # 2. Calculate Jacobian (Finite Difference)
            J, n_jac = self.jacobian(func, x, F, groups, sparsity, upper)
            nfev += n_jac
            if J is None:
                return SolverResult(x, False, f"Non-finite residual in Jacobian at iter {k}", k, nfev, F)

            # 3. Solve Linear System: J * delta = -F
            try:
                delta = np.linalg.solve(J, -F)
            except np.linalg.LinAlgError:
                delta, _, _, _ = np.linalg.lstsq(J, -F, rcond=None)

            # 4. Backtracking: accept the first damped step that lowers the residual norm
            res_norm = np.linalg.norm(F)
            alpha = self.damper
            while True:
                x_new = x + alpha * delta
                if bounds:
                    x_new = np.clip(x_new, lower, upper)
                F_new = evaluate_residual(func, x_new)
                nfev += 1
                if F_new is not None and np.linalg.norm(F_new) < res_norm:
                    break
                if alpha <= self.min_damping:
                    return SolverResult(x, False, f"Line search failed at iter {k} (max residual {max_res:.3e})",
                                        k, nfev, F)
                alpha *= 0.5

            # Check step size for stagnation
            step_norm = np.linalg.norm(x_new - x)
            x, F = x_new, F_new
            logger.debug(f"Iter {k}: Max Res={max_res:.2e}, Step={step_norm:.2e}, Damping={alpha:.4f}")
            if step_norm < 1e-14:
                converged = np.max(np.abs(F)) < self.tol
                return SolverResult(x, bool(converged), f"Stagnation (step too small) at iter {k}", k, nfev, F)

        F_ok = F.size == 0 or np.max(np.abs(F)) < self.tol
        message = f"Converged in {self.max_iter} iterations" if F_ok else "Max iterations reached"
        return SolverResult(x, bool(F_ok), message, self.max_iter, nfev, F)


class LeastSquaresSolver:
    """scipy trust-region-reflective solve of the same square system."""
    def __init__(self, tol=1e-8, max_nfev=500):
        self.tol = tol
        self.max_nfev = max_nfev

    def solve(self, func, x0, bounds=None, sparsity=None):
        kwargs = {}
        x0 = np.asarray(x0, dtype=float)
        if bounds:
            kwargs['bounds'] = bounds
            x0 = np.clip(x0, *bounds)
        if sparsity is not None:
            kwargs['jac_sparsity'] = sparsity
        try:
            sol = least_squares(func, x0, method='trf', xtol=1e-12, ftol=1e-12, gtol=1e-12,
                                max_nfev=self.max_nfev, **kwargs)
        except (ArithmeticError, ValueError) as err:
            logger.warning(f"Least-squares solve aborted: {err}")
            F = evaluate_residual(func, x0)
            return SolverResult(x0, False, f"Least-squares solve aborted: {err}", 0, 1, F)
        F = sol.fun
        converged = F.size == 0 or np.max(np.abs(F)) < self.tol
        message = sol.message if converged else f"Residual above tolerance: {sol.message}"
        return SolverResult(sol.x, bool(converged), message, sol.nfev, sol.nfev, F)


class SolverResult:
    def __init__(self, x, success, message, nit, nfev, fun=None):
        self.x = x
        self.success = success
        self.message = message
        self.nit = nit      # Number of iterations
        self.nfev = nfev    # Number of function evaluations
        self.fun = np.zeros(0) if fun is None else np.asarray(fun)
        self.cost = float(np.linalg.norm(self.fun)) if self.fun.size else 0.0
