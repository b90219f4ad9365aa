#!/usr/bin/env python3
"""
Unit Tests for the per-cloud preparation stages

Author: Reconstruction Team
"""

import threading
import unittest
from unittest.mock import patch

import numpy as np

from pointmerge.errors import InvalidArgumentError, NoClusterFoundError
from pointmerge.processing import clustering
from pointmerge.processing.clustering import ClusterParameters
from pointmerge.processing.point_cloud import PointCloud
from pointmerge.reconstruction.pipeline import CloudPreparation, PreparationParameters, prepare_cloud
from pointmerge.tests.create_test_data import make_grid, make_two_blobs


class TestCloudPreparation(unittest.TestCase):
    """Test cases for memoised preparation stages."""

    def setUp(self):
        self.raw = PointCloud(make_two_blobs(large=200, small=50), name="scan")
        self.preparation = CloudPreparation(self.raw)

    def test_stages_are_memoised(self):
        first = self.preparation.prepared()
        self.assertIs(self.preparation.prepared(), first)
        self.assertIs(self.preparation.clustered(), self.preparation.clustered())
        for stage in CloudPreparation.STAGES:
            self.assertTrue(self.preparation.is_cached(stage))

    def test_clustering_runs_once(self):
        with patch.object(clustering, "largest_cluster", wraps=clustering.largest_cluster) as spy:
            self.preparation.prepared()
            self.preparation.prepared()
            self.preparation.decimated()
            self.assertEqual(spy.call_count, 1)

    def test_update_makes_stages_stale(self):
        before = self.preparation.prepared()
        version = self.preparation.update(decimate_distance=0.05)
        self.assertEqual(version, 1)
        self.assertFalse(self.preparation.is_cached("prepared"))
        after = self.preparation.prepared()
        self.assertIsNot(after, before)
        self.assertLess(len(after), len(before))

    def test_unchanged_update_keeps_version(self):
        self.preparation.prepared()
        self.assertEqual(self.preparation.update(center=True), 0)
        self.assertTrue(self.preparation.is_cached("prepared"))

    def test_replace_raw(self):
        self.preparation.prepared()
        smaller = PointCloud(make_two_blobs(large=120, small=30), name="rescan")
        self.assertEqual(self.preparation.replace_raw(smaller), 1)
        self.assertEqual(self.preparation.name, "rescan")
        self.assertEqual(len(self.preparation.prepared()), 120)

    def test_invalidate(self):
        first = self.preparation.prepared()
        self.preparation.invalidate()
        self.assertFalse(self.preparation.is_cached("prepared"))
        second = self.preparation.prepared()
        self.assertIsNot(second, first)
        np.testing.assert_array_equal(second.points, first.points)

    def test_prepared_is_centred(self):
        prepared = self.preparation.prepared()
        np.testing.assert_allclose(prepared.centroid(), np.zeros(3), atol=1e-12)
        self.assertEqual(len(prepared), 200)
        self.assertEqual(prepared.name, "scan")

    def test_centering_transform_maps_decimated_onto_prepared(self):
        transform = self.preparation.centering_transform()
        np.testing.assert_allclose(
            self.preparation.decimated().transformed(transform).points,
            self.preparation.prepared().points,
        )
        # callers get a copy
        transform[0, 3] = 99.0
        self.assertNotEqual(self.preparation.centering_transform()[0, 3], 99.0)

    def test_without_centering(self):
        self.preparation.update(center=False)
        np.testing.assert_array_equal(self.preparation.centering_transform(), np.eye(4))
        np.testing.assert_array_equal(self.preparation.prepared().points,
                                      self.preparation.decimated().points)

    def test_clustering_disabled(self):
        self.preparation.update(cluster_enabled=False)
        self.assertIs(self.preparation.clustered(), self.raw)

    def test_clustering_failure_propagates(self):
        self.preparation.update(cluster=ClusterParameters(epsilon=1e-6, min_points=5))
        with self.assertRaises(NoClusterFoundError):
            self.preparation.prepared()

    def test_concurrent_access_builds_once(self):
        results = []
        with patch.object(clustering, "largest_cluster", wraps=clustering.largest_cluster) as spy:
            threads = [threading.Thread(target=lambda: results.append(self.preparation.prepared()))
                       for _ in range(6)]
            for thread in threads:
                thread.start()
            for thread in threads:
                thread.join()
            self.assertEqual(spy.call_count, 1)
        self.assertTrue(all(result is results[0] for result in results))


class TestPrepareCloud(unittest.TestCase):

    def test_returns_prepared_and_transform(self):
        raw = PointCloud(make_grid((5, 5, 2), spacing=0.2, origin=(3.0, 4.0, 5.0)))
        prepared, centering = prepare_cloud(raw, PreparationParameters(cluster_enabled=False))
        np.testing.assert_allclose(raw.transformed(centering).points, prepared.points)
        np.testing.assert_allclose(centering[:3, 3], -raw.centroid())

    def test_negative_decimation_rejected(self):
        with self.assertRaises(InvalidArgumentError):
            PreparationParameters(decimate_distance=-0.5)


if __name__ == '__main__':
    unittest.main()
