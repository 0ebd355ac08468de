"""
Hessian utilities for standard error computation.

The observed information is the Hessian of the negative log-likelihood at the
optimum; its inverse is the asymptotic covariance of the estimates.
"""

import numpy as np
from typing import List, Tuple

from ..utils.logging import get_logger


logger = get_logger(__name__)


def covariance_from_hessian(hessian: np.ndarray) -> Tuple[np.ndarray, List[str]]:
    """
    Invert the observed information matrix.

    Falls back to the Moore-Penrose pseudo-inverse when the Hessian is not
    positive definite.

    Returns:
        Tuple of (covariance matrix, warnings)
    """
    hessian = np.asarray(hessian, dtype=float)
    hessian = 0.5 * (hessian + hessian.T)
    warnings: List[str] = []

    if not np.all(np.isfinite(hessian)):
        warnings.append("Hessian contains non-finite values; standard errors unavailable")
        n = hessian.shape[0]
        return np.full((n, n), np.nan), warnings

    try:
        np.linalg.cholesky(hessian)
        covariance = np.linalg.inv(hessian)
    except np.linalg.LinAlgError:
        warnings.append("Hessian is not positive definite; using pseudo-inverse")
        logger.warning("Hessian is not positive definite; using pseudo-inverse")
        covariance = np.linalg.pinv(hessian)

    return covariance, warnings


def standard_errors_from_covariance(covariance: np.ndarray) -> np.ndarray:
    """Standard errors are the square roots of the covariance diagonal."""
    diagonal = np.diag(np.asarray(covariance, dtype=float))
    return np.sqrt(np.where(diagonal >= 0, diagonal, np.nan))


def validate_hessian_quality(hessian: np.ndarray) -> dict:
    """
    Assess the Hessian at the optimum for statistical inference.

    Returns:
        Dictionary with condition number, smallest eigenvalue and issues
    """
    hessian = np.asarray(hessian, dtype=float)
    info = {"condition_number": np.nan, "min_eigenvalue": np.nan, "issues": []}

    if not np.all(np.isfinite(hessian)):
        info["issues"].append("Hessian contains non-finite values")
        return info

    eigenvalues = np.linalg.eigvalsh(0.5 * (hessian + hessian.T))
    info["min_eigenvalue"] = float(eigenvalues.min())
    if eigenvalues.min() > 0:
        info["condition_number"] = float(eigenvalues.max() / eigenvalues.min())
    else:
        info["issues"].append("Hessian has non-positive eigenvalues (weak identifiability)")

    if np.isfinite(info["condition_number"]) and info["condition_number"] > 1e10:
        info["issues"].append("Hessian is ill-conditioned")

    return info
