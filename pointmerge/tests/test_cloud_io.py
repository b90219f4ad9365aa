#!/usr/bin/env python3
"""
Unit Tests for point file reading and writing

Author: Reconstruction Team
"""

import importlib.util
import tempfile
import unittest
from pathlib import Path

import numpy as np

from pointmerge.errors import EmptyInputError, UnsupportedDimensionError
from pointmerge.processing.cloud_io import load_ascii_cloud, load_cloud, save_ascii_cloud, save_cloud
from pointmerge.processing.point_cloud import PointCloud
from pointmerge.tests.create_test_data import create_test_dataset, make_blob, make_grid

HAS_OPEN3D = importlib.util.find_spec("open3d") is not None


class TestAsciiClouds(unittest.TestCase):

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.addCleanup(self.temp_dir.cleanup)
        self.directory = Path(self.temp_dir.name)

    def write(self, name, content):
        path = self.directory / name
        path.write_text(content)
        return path

    def test_save_then_load(self):
        cloud = PointCloud(make_blob((1.0, 2.0, 3.0), 40, 0.5, seed=3), name="scan")
        path = save_ascii_cloud(cloud, self.directory / "nested" / "scan.asc", precision=9)
        loaded = load_ascii_cloud(path)
        self.assertEqual(loaded.name, "scan")
        np.testing.assert_allclose(loaded.points, cloud.points, atol=1e-9)

    def test_two_column_file(self):
        path = self.write("flat.xyz", "0 0\n1 0\n1 1\n")
        cloud = load_ascii_cloud(path)
        self.assertEqual(cloud.dimension, 2)
        self.assertEqual(len(cloud), 3)

    def test_extra_columns_are_ignored(self):
        path = self.write("colour.txt", "0 0 0 255 0 0\n1 2 3 0 255 0\n")
        cloud = load_ascii_cloud(path)
        np.testing.assert_array_equal(cloud.points, [[0, 0, 0], [1, 2, 3]])

    def test_malformed_lines_are_skipped(self):
        path = self.write("dirty.asc", "0 0 0\nnot a point\n\n1 1 1\n2 2\n3 3 3\n")
        with self.assertLogs('pointmerge', level='WARNING') as captured:
            cloud = load_ascii_cloud(path)
        self.assertEqual(len(cloud), 3)
        self.assertEqual(len(captured.records), 2)
        self.assertIn("dirty.asc:2", captured.output[0])

    def test_explicit_dimension(self):
        path = self.write("points.asc", "0 0 0\n1 1 1\n")
        self.assertEqual(load_ascii_cloud(path, dimension=2).dimension, 2)
        with self.assertRaises(UnsupportedDimensionError):
            load_ascii_cloud(path, dimension=4)

    def test_missing_file(self):
        with self.assertRaises(FileNotFoundError):
            load_ascii_cloud(self.directory / "absent.asc")

    def test_nothing_parsable(self):
        path = self.write("empty.asc", "\n\n")
        with self.assertRaises(EmptyInputError):
            load_ascii_cloud(path)
        path = self.write("junk.asc", "x y z\n")
        with self.assertLogs('pointmerge', level='WARNING'):
            with self.assertRaises(EmptyInputError):
                load_ascii_cloud(path)

    def test_dispatch_by_suffix(self):
        cloud = PointCloud(make_grid((2, 2, 2)), name="cube")
        path = save_cloud(cloud, self.directory / "cube.asc")
        np.testing.assert_allclose(load_cloud(path).points, cloud.points)

    def test_create_test_dataset(self):
        clouds = [PointCloud(make_grid((2, 2, 2)), name=f"view_{i:02d}") for i in range(3)]
        paths = create_test_dataset(self.directory / "dataset", clouds)
        self.assertEqual([p.name for p in paths], ["view_00.asc", "view_01.asc", "view_02.asc"])
        self.assertTrue(all(p.exists() for p in paths))


@unittest.skipUnless(HAS_OPEN3D, "open3d not installed")
class TestOpen3dClouds(unittest.TestCase):

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.addCleanup(self.temp_dir.cleanup)
        self.directory = Path(self.temp_dir.name)

    def test_ply_round_trip(self):
        cloud = PointCloud(make_blob((0.0, 0.0, 0.0), 25, 1.0, seed=4), name="scan")
        path = save_cloud(cloud, self.directory / "scan.ply")
        loaded = load_cloud(path)
        self.assertEqual(loaded.name, "scan")
        np.testing.assert_allclose(loaded.points, cloud.points, atol=1e-6)

    def test_2d_cloud_gets_zero_z(self):
        from pointmerge.processing.open3d_interop import from_open3d, to_open3d
        pcd = to_open3d(PointCloud(make_grid((3, 3))))
        restored = from_open3d(pcd)
        self.assertEqual(restored.dimension, 3)
        np.testing.assert_array_equal(restored.points[:, 2], np.zeros(9))

    def test_missing_file(self):
        with self.assertRaises(FileNotFoundError):
            load_cloud(self.directory / "absent.pcd")


if __name__ == '__main__':
    unittest.main()
