"""
Tests for experiment configuration
"""

import unittest
from dataclasses import replace

from mesh_experiment.config import (ExperimentConfig, ConfigurationError, PhyStandard,
                                    PARAMETER_SWEEPS, wall_clock_seed)


class TestExperimentConfig(unittest.TestCase):

    def test_defaults_are_valid(self):
        config = ExperimentConfig().validate()
        self.assertEqual(config.n_nodes, 2)
        self.assertEqual(config.step, 100.0)
        self.assertEqual(config.max_packets, 500)

    def test_flows_exceeding_sources_rejected(self):
        with self.assertRaises(ConfigurationError):
            ExperimentConfig(x_size=2, y_size=1, num_flows=2).validate()

    def test_max_flows_accepted(self):
        ExperimentConfig(x_size=3, y_size=3, num_flows=8).validate()

    def test_single_node_grid_rejected(self):
        with self.assertRaises(ConfigurationError):
            ExperimentConfig(x_size=1, y_size=1).validate()

    def test_non_positive_values_rejected(self):
        for field in ('step', 'total_time', 'packet_interval', 'packet_size'):
            with self.subTest(field=field):
                with self.assertRaises(ConfigurationError):
                    ExperimentConfig(**{field: 0}).validate()

    def test_zero_flows_rejected(self):
        with self.assertRaises(ConfigurationError):
            ExperimentConfig(num_flows=0).validate()

    def test_phy_selector_fallback(self):
        self.assertEqual(PhyStandard.from_selector(1), PhyStandard.WIFI_80211A)
        self.assertEqual(PhyStandard.from_selector(3), PhyStandard.WIFI_80211G)
        self.assertEqual(PhyStandard.from_selector(5), PhyStandard.WIFI_80211_5MHZ)
        self.assertEqual(PhyStandard.from_selector(9), PhyStandard.WIFI_80211N_2_4GHZ)
        self.assertEqual(PhyStandard.from_selector(-1), PhyStandard.WIFI_80211N_2_4GHZ)

    def test_for_seed(self):
        config = ExperimentConfig(seed=1, flow_seed=10)
        other = config.for_seed(4, 13)
        self.assertEqual((other.seed, other.flow_seed), (4, 13))
        self.assertEqual(config.seed, 1)

    def test_wall_clock_seed_changes_within_a_second(self):
        seeds = {wall_clock_seed() for _ in range(20)}
        self.assertGreater(len(seeds), 1)
        self.assertTrue(all(0 <= s < 2 ** 32 for s in seeds))

    def test_parameter_sweeps_are_valid(self):
        base = ExperimentConfig()
        for name, points in PARAMETER_SWEEPS.items():
            with self.subTest(sweep=name):
                self.assertTrue(points)
                for overrides in points:
                    replace(base, **overrides).validate()
        self.assertEqual([p['packet_size'] for p in PARAMETER_SWEEPS['size']],
                         [32, 64, 128, 256, 512, 1024])
        self.assertEqual(PARAMETER_SWEEPS['interval'][0], {'packet_interval': 0.01})
        self.assertEqual(PARAMETER_SWEEPS['interval'][-1], {'packet_interval': 0.1})
        self.assertEqual(PARAMETER_SWEEPS['width'][-1], {'x_size': 20})


if __name__ == '__main__':
    unittest.main()
