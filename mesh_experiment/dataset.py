"""
Dataset Writer.
Append-only semicolon-delimited file, one row per qualifying flow.
"""

import os
import logging
import numpy as np
import pandas as pd
from typing import Iterable

from .config import DATASET_PATH, DATASET_DELIMITER
from .metrics import DerivedMetrics

logger = logging.getLogger(__name__)

NA_REP = 'NA'

# Column order matches DerivedMetrics field order
DATASET_COLUMNS = [
    'xSize', 'ySize', 'NumberFlows', 'Seed', 'StandardPHY', 'Step',
    'PacketSize', 'PacketInterval', 'TotalTime',

    'DeliveryRate', 'Throughput', 'DelayMean', 'JitterMean',

    'TxBytes', 'RxBytes', 'TxPackets', 'RxPackets', 'LostPackets',
    'DelaySum', 'JitterSum',

    'MeanTransmittedPacketSize', 'MeanTransmittedBitrate', 'MeanHopCount',
    'PacketLossRatio', 'MeanReceivedPacketSize', 'MeanReceivedBitrate',
]

PARAMETER_COLUMNS = DATASET_COLUMNS[:9]
METRIC_COLUMNS = DATASET_COLUMNS[9:]


def needs_header(path: str) -> bool:
    """True when the dataset does not exist yet or is empty."""
    return not os.path.exists(path) or os.path.getsize(path) == 0


def to_frame(rows: Iterable[DerivedMetrics]) -> pd.DataFrame:
    data = [[np.nan if v is None else v for v in row.values()] for row in rows]
    return pd.DataFrame(data, columns=DATASET_COLUMNS)


def append_row(row: DerivedMetrics, path: str = DATASET_PATH) -> bool:
    """
    Append a single row, writing the header first if the file is new.
    Returns False (after logging) when the file cannot be written.
    """
    write_header = needs_header(path)
    try:
        to_frame([row]).to_csv(path, sep=DATASET_DELIMITER, mode='a',
                               header=write_header, index=False, na_rep=NA_REP)
    except OSError as e:
        logger.error("Could not append to dataset %s: %s", path, e)
        return False
    if write_header:
        logger.info("Dataset %s created", path)
    return True


def append_rows(rows: Iterable[DerivedMetrics], path: str = DATASET_PATH) -> int:
    """Append rows one at a time; returns how many were written."""
    written = 0
    for row in rows:
        if append_row(row, path):
            written += 1
    logger.info("Dataset %s: %d new row(s)", path, written)
    return written


def load_dataset(path: str = DATASET_PATH) -> pd.DataFrame:
    """Read the dataset back; NA cells become NaN."""
    return pd.read_csv(path, sep=DATASET_DELIMITER, na_values=[NA_REP])
