#!/usr/bin/env python3
"""
Unit Tests for the small linear algebra helpers

Author: Reconstruction Team
"""

import unittest

import numpy as np

from pointmerge.errors import DimensionMismatchError, UnsupportedDimensionError
from pointmerge.numerics.linalg import (
    apply_transform,
    as_points,
    check_dimension,
    compose,
    det,
    identity_transform,
    invert_transform,
    make_transform,
    rotation_angle_2d,
    split_transform,
    squared_distances,
    translation_transform,
)
from pointmerge.tests.create_test_data import rotation_2d, rotation_3d


class TestDeterminant(unittest.TestCase):
    """Closed-form determinants against numpy."""

    def setUp(self):
        self.rng = np.random.default_rng(7)

    def test_small_matrices_match_numpy(self):
        for n in (2, 3, 4):
            for _ in range(10):
                m = self.rng.normal(size=(n, n))
                self.assertAlmostEqual(det(m), np.linalg.det(m), places=10)

    def test_rotation_has_unit_determinant(self):
        self.assertAlmostEqual(det(rotation_3d((1, 2, 3), 40.0)), 1.0, places=12)
        self.assertAlmostEqual(det(rotation_2d(-70.0)), 1.0, places=12)

    def test_non_square_rejected(self):
        with self.assertRaises(DimensionMismatchError):
            det(np.zeros((2, 3)))


class TestTransforms(unittest.TestCase):
    """Homogeneous transform helpers."""

    def test_make_and_split(self):
        R = rotation_3d((0, 0, 1), 30.0)
        t = np.array([1.0, 2.0, 3.0])
        T = make_transform(R, t)
        self.assertEqual(T.shape, (4, 4))
        np.testing.assert_array_equal(T[3], [0, 0, 0, 1])
        R2, t2 = split_transform(T)
        np.testing.assert_allclose(R2, R)
        np.testing.assert_allclose(t2, t)

    def test_make_transform_shape_mismatch(self):
        with self.assertRaises(DimensionMismatchError):
            make_transform(np.eye(3), np.zeros(2))

    def test_apply_transform(self):
        T = make_transform(rotation_2d(90.0), [1.0, 0.0])
        out = apply_transform(T, np.array([[1.0, 0.0], [0.0, 1.0]]))
        np.testing.assert_allclose(out, [[1.0, 1.0], [0.0, 0.0]], atol=1e-12)

    def test_apply_transform_wrong_dimension(self):
        with self.assertRaises(DimensionMismatchError):
            apply_transform(identity_transform(3), np.zeros((4, 2)))

    def test_compose_applies_last_first(self):
        shift = translation_transform([1.0, 0.0])
        turn = make_transform(rotation_2d(90.0), [0.0, 0.0])
        # turn first, then shift
        out = apply_transform(compose(shift, turn), np.array([[1.0, 0.0]]))
        np.testing.assert_allclose(out, [[1.0, 1.0]], atol=1e-12)

    def test_compose_requires_input(self):
        with self.assertRaises(ValueError):
            compose()

    def test_invert_round_trip(self):
        T = make_transform(2.0 * rotation_3d((1, 1, 0), 25.0), [0.5, -1.0, 4.0])
        np.testing.assert_allclose(compose(T, invert_transform(T)), np.eye(4), atol=1e-12)
        np.testing.assert_allclose(compose(invert_transform(T), T), np.eye(4), atol=1e-12)

    def test_rotation_angle_2d(self):
        self.assertAlmostEqual(np.degrees(rotation_angle_2d(rotation_2d(33.0))), 33.0, places=10)
        self.assertAlmostEqual(np.degrees(rotation_angle_2d(rotation_3d((0, 0, 1), -12.0))), -12.0, places=10)


class TestPointHelpers(unittest.TestCase):

    def test_as_points_promotes_single_point(self):
        self.assertEqual(as_points([1.0, 2.0, 3.0]).shape, (1, 3))

    def test_as_points_rejects_3d_arrays(self):
        with self.assertRaises(DimensionMismatchError):
            as_points(np.zeros((2, 2, 2)))

    def test_squared_distances(self):
        a = np.array([[0.0, 0.0], [1.0, 1.0]])
        b = np.array([[3.0, 4.0], [1.0, 1.0]])
        np.testing.assert_allclose(squared_distances(a, b), [25.0, 0.0])

    def test_check_dimension(self):
        self.assertEqual(check_dimension(2), 2)
        self.assertEqual(check_dimension(3), 3)
        for bad in (1, 4):
            with self.assertRaises(UnsupportedDimensionError):
                check_dimension(bad)


if __name__ == '__main__':
    unittest.main()
