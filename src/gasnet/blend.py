"""
Smoothing primitives.

Every sharp regime boundary in the component models (laminar/turbulent,
choked/unchoked, forward/reverse flow, saturation onset) goes through
these functions so that residuals stay C1 for the Newton iteration.
"""
import numpy as np


def smoothstep(t):
    """3t^2 - 2t^3 on t clipped to [0, 1]."""
    t = np.clip(t, 0.0, 1.0)
    return t * t * (3.0 - 2.0 * t)


def blend(y1, y2, x1, x2, x):
    """
    C1 transition from y1 (x <= x1) to y2 (x >= x2).

    Args:
        y1, y2: Values (or arrays) on either side of the transition.
        x1, x2: Transition bounds, x1 <= x2.
        x: Blend coordinate.

    Returns:
        y1*(1 - s) + y2*s with s = smoothstep((x - x1)/(x2 - x1)). A degenerate band
        (x1 == x2) reduces to a step at x1.
    """
    x1 = np.asarray(x1, dtype=float)
    x2 = np.asarray(x2, dtype=float)
    width = x2 - x1
    if np.any(width < 0):
        raise ValueError("blend requires x1 <= x2")
    safe = np.where(width > 0, width, 1.0)
    t = np.where(width > 0, (x - x1) / safe, np.where(x < x1, 0.0, 1.0))
    s = smoothstep(t)
    result = np.asarray(y1) * (1.0 - s) + np.asarray(y2) * s
    return result if np.ndim(result) else float(result)


def smooth_magnitude(a, b):
    """sqrt(a^2 + 4 b^2): |a| regularised by b, exact when b = 0."""
    return np.sqrt(np.square(a) + 4.0 * np.square(b))


def limit_magnitude(value, limit, tolerance):
    """
    Saturate |value| at limit with a C1 knee over [(1 - tolerance)*limit, limit].

    Below the knee the value is returned unchanged; at and beyond the limit the
    result is exactly +/-limit, so the magnitude never exceeds limit.
    """
    magnitude = np.abs(value)
    limited = np.minimum(blend(magnitude, limit, (1.0 - tolerance) * limit, limit, magnitude), limit)
    return np.sign(value) * limited
