"""
Tests for the dataset writer
"""

import os
import shutil
import tempfile
import unittest

import pandas as pd

from mesh_experiment.config import ExperimentConfig
from mesh_experiment.dataset import (DATASET_COLUMNS, append_row, append_rows,
                                     load_dataset, needs_header)
from mesh_experiment.metrics import DerivedMetrics, derive_metrics
from mesh_experiment.engine import RawFlowStats

HEADER = ';'.join(DATASET_COLUMNS)


def make_row(seed=1, rx_packets=8):
    stats = RawFlowStats(tx_bytes=5400, rx_bytes=rx_packets * 540, tx_packets=10,
                         rx_packets=rx_packets, lost_packets=10 - rx_packets,
                         delay_sum=0.01 * rx_packets, jitter_sum=0.001,
                         times_forwarded=0, time_first_tx_packet=1.0,
                         time_last_tx_packet=1.9, time_first_rx_packet=1.01,
                         time_last_rx_packet=1.91)
    return derive_metrics(stats, ExperimentConfig(seed=seed))


class TestDatasetWriter(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self.path = os.path.join(self.tmpdir, 'data.csv')

    def tearDown(self):
        shutil.rmtree(self.tmpdir)

    def read_lines(self):
        with open(self.path) as f:
            return f.read().splitlines()

    def test_header_has_26_columns(self):
        self.assertEqual(len(DATASET_COLUMNS), 26)
        self.assertEqual(len(DATASET_COLUMNS), len(DerivedMetrics.field_names()))

    def test_new_file_gets_header_and_row(self):
        self.assertTrue(append_row(make_row(), self.path))
        lines = self.read_lines()
        self.assertEqual(lines[0], HEADER)
        self.assertEqual(len(lines), 2)
        self.assertEqual(len(lines[1].split(';')), 26)

    def test_two_runs_one_header(self):
        append_rows([make_row(1), make_row(1, 5)], self.path)
        append_rows([make_row(2), make_row(2, 3), make_row(2, 9)], self.path)
        lines = self.read_lines()
        self.assertEqual(lines.count(HEADER), 1)
        self.assertEqual(len(lines), 1 + 2 + 3)

    def test_existing_header_not_duplicated(self):
        with open(self.path, 'w') as f:
            f.write(HEADER + '\n')
        self.assertFalse(needs_header(self.path))
        append_row(make_row(), self.path)
        append_row(make_row(), self.path)
        lines = self.read_lines()
        self.assertEqual(lines.count(HEADER), 1)
        self.assertEqual(len(lines), 3)

    def test_empty_file_gets_header(self):
        open(self.path, 'w').close()
        self.assertTrue(needs_header(self.path))
        append_row(make_row(), self.path)
        self.assertEqual(self.read_lines()[0], HEADER)

    def test_existing_rows_preserved(self):
        append_row(make_row(1), self.path)
        before = self.read_lines()
        append_row(make_row(2), self.path)
        self.assertEqual(self.read_lines()[:2], before)

    def test_not_applicable_written_as_na(self):
        stats = RawFlowStats(tx_bytes=540, rx_bytes=540, tx_packets=1, rx_packets=1,
                             delay_sum=0.002, time_first_tx_packet=1.0,
                             time_last_tx_packet=1.0, time_first_rx_packet=1.002,
                             time_last_rx_packet=1.002)
        append_row(derive_metrics(stats, ExperimentConfig()), self.path)
        df = load_dataset(self.path)
        self.assertEqual(list(df.columns), DATASET_COLUMNS)
        self.assertTrue(pd.isna(df.loc[0, 'JitterMean']))
        self.assertTrue(pd.isna(df.loc[0, 'MeanTransmittedBitrate']))
        self.assertIn('NA', self.read_lines()[1].split(';'))

    def test_unwritable_path_logged_and_skipped(self):
        path = os.path.join(self.tmpdir, 'missing', 'data.csv')
        with self.assertLogs('mesh_experiment.dataset', level='ERROR'):
            written = append_rows([make_row(), make_row()], path)
        self.assertEqual(written, 0)
        self.assertFalse(os.path.exists(path))

    def test_load_values(self):
        append_rows([make_row(3, 8)], self.path)
        df = load_dataset(self.path)
        self.assertEqual(len(df), 1)
        self.assertEqual(df.loc[0, 'Seed'], 3)
        self.assertAlmostEqual(df.loc[0, 'DeliveryRate'], 80.0)


if __name__ == '__main__':
    unittest.main()
