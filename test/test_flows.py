"""
Tests for the flow sampler
"""

import unittest

import numpy as np

from mesh_experiment.config import ConfigurationError
from mesh_experiment.flows import Flow, FlowAssignment, sample_flows, create_flow_rng


class TestFlowSampler(unittest.TestCase):

    def test_distinct_non_sink_sources(self):
        for k in range(1, 16):
            with self.subTest(k=k):
                flows = sample_flows(16, k, np.random.RandomState(k))
                sources = flows.sources
                self.assertEqual(len(sources), k)
                self.assertEqual(len(set(sources)), k)
                self.assertNotIn(0, sources)
                self.assertTrue(all(1 <= s <= 15 for s in sources))

    def test_all_sources_when_k_is_max(self):
        flows = sample_flows(9, 8, np.random.RandomState(3))
        self.assertEqual(sorted(flows.sources), list(range(1, 9)))

    def test_only_non_sink_node_selected(self):
        flows = sample_flows(2, 1, np.random.RandomState(1))
        self.assertEqual(flows.sources, (1,))

    def test_too_many_flows_rejected(self):
        with self.assertRaises(ConfigurationError):
            sample_flows(4, 4, np.random.RandomState(1))

    def test_staggered_start_times(self):
        flows = sample_flows(10, 5, np.random.RandomState(2), base_offset=2.0)
        for flow in flows:
            self.assertAlmostEqual(flow.start_time, 2.0 * 0.01 * flow.source)
            self.assertEqual(flow.sink, 0)

    def test_flow_ids_sequential(self):
        flows = sample_flows(10, 4, np.random.RandomState(2))
        self.assertEqual([f.flow_id for f in flows], [1, 2, 3, 4])

    def test_same_flow_seed_reproducible(self):
        a = sample_flows(25, 6, create_flow_rng(42))
        b = sample_flows(25, 6, create_flow_rng(42))
        self.assertEqual(a.sources, b.sources)

    def test_wall_clock_seed_logged(self):
        with self.assertLogs('mesh_experiment.flows', level='INFO'):
            create_flow_rng(None)

    def test_assignment_rejects_duplicates(self):
        with self.assertRaises(ValueError):
            FlowAssignment(flows=(Flow(1, 3, 0.03), Flow(2, 3, 0.03)))

    def test_assignment_rejects_sink_source(self):
        with self.assertRaises(ValueError):
            FlowAssignment(flows=(Flow(1, 0, 0.0),))


if __name__ == '__main__':
    unittest.main()
