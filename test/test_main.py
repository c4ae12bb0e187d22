"""
Tests for the command line driver
"""

import os
import shutil
import tempfile
import unittest
import argparse
from contextlib import redirect_stdout, redirect_stderr
from io import StringIO

import main
from mesh_experiment.config import ExperimentConfig
from mesh_experiment.dataset import load_dataset


class TestCommandLine(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self.dataset = os.path.join(self.tmpdir, 'data.csv')

    def tearDown(self):
        shutil.rmtree(self.tmpdir)

    def test_defaults_match_config(self):
        args = main.build_parser().parse_args([])
        self.assertEqual(ExperimentConfig.from_args(args), ExperimentConfig())

    def test_original_option_names(self):
        args = main.build_parser().parse_args(
            ['--x-size=4', '--y-size=3', '--numFlows=5', '--standardPhy=2',
             '--packet-interval=0.5', '--timeStartFlowSources=2', '--channels=0'])
        config = ExperimentConfig.from_args(args)
        self.assertEqual((config.x_size, config.y_size, config.num_flows), (4, 3, 5))
        self.assertEqual(config.standard_phy, 2)
        self.assertEqual(config.packet_interval, 0.5)
        self.assertEqual(config.time_start_flow_sources, 2.0)
        self.assertFalse(config.channels)

    def test_str2bool(self):
        self.assertTrue(main.str2bool('1'))
        self.assertTrue(main.str2bool('True'))
        self.assertFalse(main.str2bool('0'))
        with self.assertRaises(argparse.ArgumentTypeError):
            main.str2bool('maybe')

    def test_invalid_flow_count_exits(self):
        with redirect_stderr(StringIO()):
            with self.assertRaises(SystemExit) as ctx:
                main.main(['--numFlows=3', '--dataset', self.dataset])
        self.assertEqual(ctx.exception.code, 2)
        self.assertFalse(os.path.exists(self.dataset))

    def test_sweep_with_summary_and_plots(self):
        out = StringIO()
        with redirect_stdout(out):
            results = main.main(['--x-size=3', '--y-size=2', '--numFlows=2',
                                 '--runs=2', '--flow-seed=4', '--summary', '--plot',
                                 '--dataset', self.dataset, '--output-dir', self.tmpdir,
                                 '--log-level', 'WARNING'])
        self.assertEqual(len(results), 2)
        self.assertIn('MESH GRID EXPERIMENT', out.getvalue())
        self.assertTrue(os.path.exists(os.path.join(self.tmpdir, 'grid_topology.png')))
        self.assertTrue(os.path.exists(os.path.join(self.tmpdir, 'results.xml')))
        self.assertIn('GRID TOPOLOGY SUMMARY', out.getvalue())

    def test_parameter_sweep_option(self):
        with redirect_stdout(StringIO()):
            results = main.main(['--sweep', 'size', '--runs=2', '--flow-seed=3',
                                 '--dataset', self.dataset, '--output-dir', self.tmpdir,
                                 '--log-level', 'WARNING'])
        self.assertEqual(len(results), 12)
        self.assertEqual(sorted({r.config.packet_size for r in results}),
                         [32, 64, 128, 256, 512, 1024])
        rows = sum(r.rows_written for r in results)
        df = load_dataset(self.dataset)
        self.assertEqual(len(df), rows)
        self.assertEqual(set(df['PacketSize']), {r.config.packet_size for r in results
                                                 if r.rows_written})

    def test_invalid_sweep_point_exits(self):
        with redirect_stderr(StringIO()):
            with self.assertRaises(SystemExit) as ctx:
                main.main(['--sweep', 'interval', '--time=0.05', '--packet-interval=0.01',
                           '--dataset', self.dataset])
        self.assertEqual(ctx.exception.code, 2)
        self.assertFalse(os.path.exists(self.dataset))


if __name__ == '__main__':
    unittest.main()
