#!/usr/bin/env python3
"""
Singular Value Decomposition

Householder reduction to bidiagonal form followed by implicit-shift QR
iteration on the bidiagonal (the LINPACK/JAMA scheme). Only 2x2 and 3x3
cross-covariance matrices reach this code in practice, but any m x n matrix
decomposes; for m < n the transpose is decomposed and U/V swap roles.

For A (m x n, m >= n):  A = U * diag(s) * V^T, U is m x n, V is n x n,
s[0] >= s[1] >= ... >= s[n-1] >= 0.

Author: Reconstruction Team
"""

import logging
from dataclasses import dataclass

import numpy as np

from ..errors import ConvergenceError, DimensionMismatchError

logger = logging.getLogger(__name__)

EPS = 2.0 ** -52
TINY = 2.0 ** -966

# QR sweeps allowed per singular value before giving up
MAX_SWEEPS = 75


@dataclass(frozen=True)
class SVDResult:
    """U, singular values (descending) and V with M = U diag(s) V^T."""
    u: np.ndarray
    s: np.ndarray
    v: np.ndarray

    @property
    def rank(self) -> int:
        """Numerical rank using the usual max(m, n) * s_max * eps cut-off."""
        if self.s.size == 0:
            return 0
        tol = max(self.u.shape[0], self.v.shape[0]) * self.s[0] * EPS
        return int(np.sum(self.s > tol))

    def reconstruct(self) -> np.ndarray:
        return self.u @ np.diag(self.s) @ self.v.T


def _rotate_columns(mat: np.ndarray, a: int, b: int, cs: float, sn: float):
    """Apply a Givens rotation in-place to columns a and b."""
    col_a = mat[:, a].copy()
    mat[:, a] = cs * col_a + sn * mat[:, b]
    mat[:, b] = -sn * col_a + cs * mat[:, b]


def _decompose_tall(matrix: np.ndarray) -> SVDResult:
    """Decompose a matrix with at least as many rows as columns."""
    A = np.array(matrix, dtype=np.float64, copy=True)
    m, n = A.shape
    nu = min(m, n)

    s = np.zeros(min(m + 1, n))
    U = np.zeros((m, nu))
    V = np.zeros((n, n))
    e = np.zeros(n)
    work = np.zeros(m)

    # Reduce A to bidiagonal form: diagonal in s, super-diagonal in e.
    nct = min(m - 1, n)
    nrt = max(0, min(n - 2, m))
    for k in range(max(nct, nrt)):
        if k < nct:
            # k-th column transformation, k-th diagonal into s[k]
            s[k] = np.linalg.norm(A[k:, k])
            if s[k] != 0.0:
                if A[k, k] < 0.0:
                    s[k] = -s[k]
                A[k:, k] /= s[k]
                A[k, k] += 1.0
            s[k] = -s[k]

        for j in range(k + 1, n):
            if k < nct and s[k] != 0.0:
                t = -np.dot(A[k:, k], A[k:, j]) / A[k, k]
                A[k:, j] += t * A[k:, k]
            # k-th row of A feeds the row transformation below
            e[j] = A[k, j]

        if k < nct:
            U[k:, k] = A[k:, k]

        if k < nrt:
            # k-th row transformation, k-th super-diagonal into e[k]
            e[k] = np.linalg.norm(e[k + 1:])
            if e[k] != 0.0:
                if e[k + 1] < 0.0:
                    e[k] = -e[k]
                e[k + 1:] /= e[k]
                e[k + 1] += 1.0
            e[k] = -e[k]

            if k + 1 < m and e[k] != 0.0:
                work[k + 1:] = A[k + 1:, k + 1:] @ e[k + 1:]
                for j in range(k + 1, n):
                    t = -e[j] / e[k + 1]
                    A[k + 1:, j] += t * work[k + 1:]

            V[k + 1:, k] = e[k + 1:]

    # Final bidiagonal matrix of order p.
    p = min(n, m + 1)
    if nct < n:
        s[nct] = A[nct, nct]
    if m < p:
        s[p - 1] = 0.0
    if nrt + 1 < p:
        e[nrt] = A[nrt, p - 1]
    e[p - 1] = 0.0

    # Generate U.
    for j in range(nct, nu):
        U[:, j] = 0.0
        U[j, j] = 1.0
    for k in range(nct - 1, -1, -1):
        if s[k] != 0.0:
            for j in range(k + 1, nu):
                t = -np.dot(U[k:, k], U[k:, j]) / U[k, k]
                U[k:, j] += t * U[k:, k]
            U[k:, k] = -U[k:, k]
            U[k, k] += 1.0
            U[:max(k - 1, 0), k] = 0.0
        else:
            U[:, k] = 0.0
            U[k, k] = 1.0

    # Generate V.
    for k in range(n - 1, -1, -1):
        if k < nrt and e[k] != 0.0:
            for j in range(k + 1, nu):
                t = -np.dot(V[k + 1:, k], V[k + 1:, j]) / V[k + 1, k]
                V[k + 1:, j] += t * V[k + 1:, k]
        V[:, k] = 0.0
        V[k, k] = 1.0

    # Main iteration loop for the singular values.
    pp = p - 1
    sweeps = 0
    while p > 0:
        if sweeps > MAX_SWEEPS:
            raise ConvergenceError(
                f"SVD did not converge after {MAX_SWEEPS} sweeps on a {m}x{n} matrix"
            )

        # Inspect for negligible elements in s and e. On completion:
        #   kase = 1  s[p-1] and e[k-1] negligible, k < p
        #   kase = 2  s[k] negligible, k < p
        #   kase = 3  e[k-1] negligible, k < p, s[k..p-1] not negligible (QR step)
        #   kase = 4  e[p-2] negligible (convergence)
        k = p - 2
        while k >= 0:
            if abs(e[k]) <= TINY + EPS * (abs(s[k]) + abs(s[k + 1])):
                e[k] = 0.0
                break
            k -= 1

        if k == p - 2:
            kase = 4
        else:
            ks = p - 1
            while ks > k:
                t = (abs(e[ks]) if ks != p else 0.0) + (abs(e[ks - 1]) if ks != k + 1 else 0.0)
                if abs(s[ks]) <= TINY + EPS * t:
                    s[ks] = 0.0
                    break
                ks -= 1
            if ks == k:
                kase = 3
            elif ks == p - 1:
                kase = 1
            else:
                kase = 2
                k = ks
        k += 1

        if kase == 1:
            # Deflate negligible s[p-1].
            f = e[p - 2]
            e[p - 2] = 0.0
            for j in range(p - 2, k - 1, -1):
                t = np.hypot(s[j], f)
                cs = s[j] / t
                sn = f / t
                s[j] = t
                if j != k:
                    f = -sn * e[j - 1]
                    e[j - 1] = cs * e[j - 1]
                _rotate_columns(V, j, p - 1, cs, sn)

        elif kase == 2:
            # Split at negligible s[k-1].
            f = e[k - 1]
            e[k - 1] = 0.0
            for j in range(k, p):
                t = np.hypot(s[j], f)
                cs = s[j] / t
                sn = f / t
                s[j] = t
                f = -sn * e[j]
                e[j] = cs * e[j]
                _rotate_columns(U, j, k - 1, cs, sn)

        elif kase == 3:
            # One implicit-shift QR step.
            scale = max(abs(s[p - 1]), abs(s[p - 2]), abs(e[p - 2]), abs(s[k]), abs(e[k]))
            sp = s[p - 1] / scale
            spm1 = s[p - 2] / scale
            epm1 = e[p - 2] / scale
            sk = s[k] / scale
            ek = e[k] / scale
            b = ((spm1 + sp) * (spm1 - sp) + epm1 * epm1) / 2.0
            c = (sp * epm1) * (sp * epm1)
            shift = 0.0
            if b != 0.0 or c != 0.0:
                shift = np.sqrt(b * b + c)
                if b < 0.0:
                    shift = -shift
                shift = c / (b + shift)
            f = (sk + sp) * (sk - sp) + shift
            g = sk * ek

            # Chase zeros.
            for j in range(k, p - 1):
                t = np.hypot(f, g)
                cs = f / t
                sn = g / t
                if j != k:
                    e[j - 1] = t
                f = cs * s[j] + sn * e[j]
                e[j] = cs * e[j] - sn * s[j]
                g = sn * s[j + 1]
                s[j + 1] = cs * s[j + 1]
                _rotate_columns(V, j, j + 1, cs, sn)

                t = np.hypot(f, g)
                cs = f / t
                sn = g / t
                s[j] = t
                f = cs * e[j] + sn * s[j + 1]
                s[j + 1] = -sn * e[j] + cs * s[j + 1]
                g = sn * e[j + 1]
                e[j + 1] = cs * e[j + 1]
                if j < m - 1:
                    _rotate_columns(U, j, j + 1, cs, sn)
            e[p - 2] = f
            sweeps += 1

        else:
            # Convergence: make the singular value positive.
            if s[k] <= 0.0:
                s[k] = -s[k] if s[k] < 0.0 else 0.0
                V[:pp + 1, k] = -V[:pp + 1, k]

            # Order the singular values.
            while k < pp:
                if s[k] >= s[k + 1]:
                    break
                s[k], s[k + 1] = s[k + 1], s[k]
                if k < n - 1:
                    V[:, [k, k + 1]] = V[:, [k + 1, k]]
                if k < m - 1:
                    U[:, [k, k + 1]] = U[:, [k + 1, k]]
                k += 1
            sweeps = 0
            p -= 1

    return SVDResult(u=U, s=s[:nu].copy(), v=V)


def svd(matrix) -> SVDResult:
    """
    Decompose ``matrix`` into U, s, V with matrix = U diag(s) V^T.

    Args:
        matrix: Real 2D array-like (m x n).

    Returns:
        SVDResult with orthonormal columns in U and V and s sorted descending.

    Raises:
        DimensionMismatchError: If the input is not a non-empty 2D matrix.
        ConvergenceError: If the QR iteration fails to converge.
    """
    M = np.asarray(matrix, dtype=np.float64)
    if M.ndim != 2 or M.size == 0:
        raise DimensionMismatchError(f"SVD needs a non-empty 2D matrix, got shape {M.shape}")
    if not np.all(np.isfinite(M)):
        raise ConvergenceError("SVD input contains NaN or infinite entries")

    m, n = M.shape
    if m >= n:
        return _decompose_tall(M)

    # Wide matrix: decompose the transpose and swap the roles of U and V.
    transposed = _decompose_tall(M.T)
    return SVDResult(u=transposed.v, s=transposed.s, v=transposed.u)
