"""
Sums of squares for least-squares fits of a centered response on a
centered design. Shared by the RDA fit and the stepwise selector.
"""

import numpy as np


def projector_basis(design: np.ndarray) -> np.ndarray:
    """Orthonormal basis of the design's column space (reduced QR)."""
    if design.shape[1] == 0:
        return np.zeros((design.shape[0], 0))
    q, _ = np.linalg.qr(design)
    return q


def fitted_values(basis: np.ndarray, response: np.ndarray) -> np.ndarray:
    """Least-squares fitted values QQᵀY."""
    if basis.shape[1] == 0:
        return np.zeros_like(response)
    return basis @ (basis.T @ response)


def fitted_ss(basis: np.ndarray, response: np.ndarray) -> float:
    """Σ fitted² = ‖QᵀY‖²."""
    if basis.shape[1] == 0:
        return 0.0
    return float(np.sum((basis.T @ response) ** 2))


def r_squared(fitted: float, total: float) -> float:
    return fitted / total if total > 0 else 0.0


def adjusted_r_squared(r2: float, n: int, m: int) -> float:
    """Ezekiel adjustment; NaN when there are no residual degrees of freedom."""
    if m == 0:
        return 0.0
    dof = n - m - 1
    if dof <= 0:
        return float('nan')
    return 1.0 - (1.0 - r2) * (n - 1) / dof
