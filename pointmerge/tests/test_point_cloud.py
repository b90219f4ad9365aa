#!/usr/bin/env python3
"""
Unit Tests for the PointCloud container

Author: Reconstruction Team
"""

import unittest

import numpy as np

from pointmerge.errors import (
    DimensionMismatchError,
    EmptyInputError,
    EmptyResultError,
    InvalidArgumentError,
    UnsupportedDimensionError,
)
from pointmerge.numerics.linalg import make_transform
from pointmerge.processing.point_cloud import PointCloud, as_point_cloud, same_points
from pointmerge.tests.create_test_data import UNIT_SQUARE, make_grid, rotation_2d


class TestPointCloudConstruction(unittest.TestCase):
    """Validation rules applied when a cloud is built."""

    def test_from_list_and_array(self):
        from_list = PointCloud([[0, 0, 0], [1, 2, 3]], name="a")
        from_array = PointCloud(np.array([[0, 0, 0], [1, 2, 3]]))
        self.assertEqual(len(from_list), 2)
        self.assertEqual(from_list.dimension, 3)
        self.assertEqual(from_list.name, "a")
        np.testing.assert_array_equal(from_list.points, from_array.points)
        self.assertEqual(from_list.points.dtype, np.float64)

    def test_empty_rejected(self):
        with self.assertRaises(EmptyInputError):
            PointCloud([])
        with self.assertRaises(EmptyInputError):
            PointCloud(np.zeros((0, 3)))

    def test_ragged_rejected(self):
        with self.assertRaises(DimensionMismatchError):
            PointCloud([[0, 0, 0], [1, 1]])

    def test_unsupported_dimension(self):
        with self.assertRaises(UnsupportedDimensionError):
            PointCloud([[1, 2, 3, 4]])
        with self.assertRaises(UnsupportedDimensionError):
            PointCloud([[1], [2]])

    def test_non_finite_rejected(self):
        with self.assertRaises(InvalidArgumentError):
            PointCloud([[0.0, np.inf], [1.0, 1.0]])

    def test_points_are_private_and_read_only(self):
        source = np.array([[0.0, 0.0], [1.0, 1.0]])
        cloud = PointCloud(source)
        source[0, 0] = 99.0
        self.assertEqual(cloud.points[0, 0], 0.0)
        with self.assertRaises(ValueError):
            cloud.points[0, 0] = 5.0

    def test_errors_are_value_errors(self):
        with self.assertRaises(ValueError):
            PointCloud([])

    def test_as_point_cloud(self):
        cloud = PointCloud(UNIT_SQUARE)
        self.assertIs(as_point_cloud(cloud), cloud)
        self.assertEqual(len(as_point_cloud(UNIT_SQUARE, name="sq")), 5)


class TestPointCloudGeometry(unittest.TestCase):
    """Derived quantities and pure transformations."""

    def setUp(self):
        self.square = PointCloud(UNIT_SQUARE + [3.0, 4.0], name="square")

    def test_centroid_and_range(self):
        np.testing.assert_allclose(self.square.centroid(), [3.0, 4.0])
        low, high = self.square.bounding_range()
        np.testing.assert_allclose(low, [2.0, 3.0])
        np.testing.assert_allclose(high, [4.0, 5.0])
        self.assertAlmostEqual(self.square.diagonal(), np.sqrt(8.0))

    def test_centered(self):
        centered = self.square.centered()
        np.testing.assert_allclose(centered.centroid(), [0.0, 0.0], atol=1e-12)
        self.assertEqual(centered.name, "square")
        np.testing.assert_allclose(self.square.centroid(), [3.0, 4.0])

    def test_transformed(self):
        T = make_transform(rotation_2d(90.0), [1.0, 0.0])
        moved = PointCloud([[1.0, 0.0]]).transformed(T)
        np.testing.assert_allclose(moved.points, [[1.0, 1.0]], atol=1e-12)

    def test_concatenate(self):
        merged = PointCloud.concatenate([self.square, self.square.centered()], name="both")
        self.assertEqual(len(merged), 10)
        self.assertEqual(merged.name, "both")

    def test_concatenate_rejects_mixed_dimensions(self):
        with self.assertRaises(DimensionMismatchError):
            PointCloud.concatenate([self.square, PointCloud(make_grid((2, 2, 2)))])
        with self.assertRaises(EmptyInputError):
            PointCloud.concatenate([])

    def test_same_points_ignores_order(self):
        shuffled = self.square.points[::-1]
        self.assertTrue(same_points(self.square, shuffled))
        self.assertFalse(same_points(self.square, self.square.centered()))
        self.assertFalse(same_points(self.square, self.square.points[:3]))


class TestAveragedAlongZ(unittest.TestCase):
    """Z-bucket averaging of merged clouds."""

    def test_buckets_are_averaged(self):
        cloud = PointCloud([
            [0.0, 0.0, 1.0],
            [0.1, 0.1, 3.0],
            [5.0, 5.0, 0.0],
            [5.1, 5.1, 2.0],
            [9.9, 9.9, 7.0],
        ])
        averaged = cloud.averaged_along_z(subdivisions=10, min_per_bucket=2)
        np.testing.assert_allclose(averaged.points, [[0.05, 0.05, 2.0], [5.05, 5.05, 1.0]])

    def test_min_per_bucket_one_keeps_every_bucket(self):
        cloud = PointCloud(make_grid((4, 4, 1), spacing=1.0))
        averaged = cloud.averaged_along_z(subdivisions=100, min_per_bucket=1)
        self.assertEqual(len(averaged), 16)

    def test_no_full_bucket(self):
        cloud = PointCloud([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [2.0, 0.0, 0.0]])
        with self.assertRaises(EmptyResultError):
            cloud.averaged_along_z(subdivisions=2)

    def test_requires_3d(self):
        with self.assertRaises(UnsupportedDimensionError):
            PointCloud(UNIT_SQUARE).averaged_along_z()

    def test_invalid_arguments(self):
        cloud = PointCloud(make_grid((2, 2, 2)))
        with self.assertRaises(InvalidArgumentError):
            cloud.averaged_along_z(subdivisions=0)
        with self.assertRaises(InvalidArgumentError):
            cloud.averaged_along_z(min_per_bucket=0)


if __name__ == '__main__':
    unittest.main()
