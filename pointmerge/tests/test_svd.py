#!/usr/bin/env python3
"""
Unit Tests for the SVD solver

Covers square, tall and wide inputs, rank-deficient matrices and input
validation.

Author: Reconstruction Team
"""

import unittest

import numpy as np

from pointmerge.errors import ConvergenceError, DimensionMismatchError
from pointmerge.numerics.svd import SVDResult, svd


class TestSVD(unittest.TestCase):
    """Test cases for svd()."""

    def setUp(self):
        self.rng = np.random.default_rng(42)

    def assertValidDecomposition(self, matrix, result, atol=1e-10):
        m, n = matrix.shape
        k = min(m, n)
        self.assertIsInstance(result, SVDResult)
        self.assertEqual(result.s.shape, (k,))
        np.testing.assert_allclose(result.reconstruct(), matrix, atol=atol)
        np.testing.assert_allclose(result.u.T @ result.u, np.eye(result.u.shape[1]), atol=atol)
        np.testing.assert_allclose(result.v.T @ result.v, np.eye(result.v.shape[1]), atol=atol)
        self.assertTrue(np.all(result.s >= 0.0))
        self.assertTrue(np.all(np.diff(result.s) <= 1e-12), f"not descending: {result.s}")

    def test_square_matrices(self):
        for n in (2, 3):
            for _ in range(25):
                matrix = self.rng.normal(size=(n, n))
                result = svd(matrix)
                self.assertValidDecomposition(matrix, result)
                np.testing.assert_allclose(result.s, np.linalg.svd(matrix, compute_uv=False), atol=1e-10)

    def test_tall_matrix(self):
        matrix = self.rng.normal(size=(6, 3))
        result = svd(matrix)
        self.assertEqual(result.u.shape, (6, 3))
        self.assertEqual(result.v.shape, (3, 3))
        self.assertValidDecomposition(matrix, result)

    def test_wide_matrix_uses_transpose(self):
        matrix = self.rng.normal(size=(2, 5))
        result = svd(matrix)
        self.assertEqual(result.u.shape, (2, 2))
        self.assertEqual(result.v.shape, (5, 2))
        np.testing.assert_allclose(result.reconstruct(), matrix, atol=1e-10)
        np.testing.assert_allclose(result.s, svd(matrix.T).s, atol=1e-12)

    def test_rank_deficient(self):
        a = self.rng.normal(size=(3, 1))
        matrix = a @ a.T
        result = svd(matrix)
        self.assertValidDecomposition(matrix, result)
        self.assertAlmostEqual(result.s[1], 0.0, places=10)
        self.assertAlmostEqual(result.s[2], 0.0, places=10)

    def test_zero_matrix(self):
        result = svd(np.zeros((3, 3)))
        np.testing.assert_array_equal(result.s, np.zeros(3))
        self.assertEqual(result.rank, 0)
        self.assertValidDecomposition(np.zeros((3, 3)), result)

    def test_diagonal_ordering(self):
        result = svd(np.diag([1.0, 5.0, 3.0]))
        np.testing.assert_allclose(result.s, [5.0, 3.0, 1.0], atol=1e-12)
        self.assertEqual(result.rank, 3)
        self.assertEqual(svd(np.diag([2.0, 0.0, 0.0])).rank, 1)

    def test_orthogonal_input_has_unit_singular_values(self):
        q, _ = np.linalg.qr(self.rng.normal(size=(3, 3)))
        np.testing.assert_allclose(svd(q).s, np.ones(3), atol=1e-12)

    def test_invalid_inputs(self):
        with self.assertRaises(DimensionMismatchError):
            svd(np.zeros(3))
        with self.assertRaises(DimensionMismatchError):
            svd(np.zeros((0, 3)))
        with self.assertRaises(ConvergenceError):
            svd(np.array([[1.0, np.nan], [0.0, 1.0]]))


if __name__ == '__main__':
    unittest.main()
