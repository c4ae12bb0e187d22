"""
Configuration and Constants for the Mesh Grid Experiment.
"""

import time
from enum import IntEnum
from dataclasses import dataclass, replace
from typing import Dict, List, Optional

# =============================================================================
# DEFAULTS (same values as the original ns-3 scenario)
# =============================================================================

X_SIZE = 2  # nodes per row
Y_SIZE = 1  # rows
NUM_FLOWS = 1
SEED = 1
STANDARD_PHY = 1  # 802.11a
STEP = 100.0  # meters between grid neighbours
RANDOM_START = 0.1  # seconds, max random MAC start delay
TOTAL_TIME = 50.0  # seconds
PACKET_INTERVAL = 0.1  # seconds
TIME_START_FLOW_SOURCES = 1.0  # seconds, base flow start offset
PACKET_SIZE = 512  # bytes
N_IFACES = 1
CHANNELS = True
PCAP = False
DOT11S_STACK = 'ns3::Dot11sStack'
FLAME_STACK = 'ns3::FlameStack'
STACK = DOT11S_STACK
ROOT = 'ff:ff:ff:ff:ff:ff'  # broadcast == root not set

SINK_ID = 0
SINK_PORT = 9
VARIANCE_RUNS = 10

# Parameter sweeps: each point overrides some fields of the base config,
# then runs a full variance sweep into the same dataset.
PARAMETER_SWEEPS: Dict[str, List[Dict]] = {
    'interval': [{'packet_interval': round(0.01 * i, 2)} for i in range(1, 11)],
    'size': [{'packet_size': 32 * 2 ** i} for i in range(6)],  # 32 .. 1024
    'grid': [{'x_size': n, 'y_size': n} for n in range(2, 11)],  # 2x2 .. 10x10
    'width': [{'x_size': n} for n in range(2, 21)],
}

# Flow start = TIME_START_FLOW_SOURCES * (FLOW_START_FACTOR * node index)
FLOW_START_FACTOR = 0.01

# Throughput reference window (seconds) used by the dataset
THROUGHPUT_WINDOW = 10.0

# Output files
DATASET_PATH = 'data.csv'
DATASET_DELIMITER = ';'
FLOW_STATS_FILE = 'results.xml'
MESH_REPORT_PATTERN = 'mp-report-{}.xml'

# Address space handed out to mesh point devices
NETWORK_BASE = '10.1.1.0'
NETWORK_MASK = '255.255.255.0'


class ConfigurationError(ValueError):
    """Invalid combination of experiment parameters."""


class PhyStandard(IntEnum):
    """PHY standard selector accepted on the command line."""
    WIFI_80211A = 1  # 5 GHz
    WIFI_80211B = 2  # 2.4 GHz
    WIFI_80211G = 3  # 2.4 GHz
    WIFI_80211_10MHZ = 4
    WIFI_80211_5MHZ = 5
    WIFI_80211N_2_4GHZ = 0

    @classmethod
    def from_selector(cls, selector: int) -> 'PhyStandard':
        """Map the integer selector; out-of-range values fall back to 802.11n 2.4 GHz."""
        if selector in (1, 2, 3, 4, 5):
            return cls(selector)
        return cls.WIFI_80211N_2_4GHZ


@dataclass(frozen=True)
class ExperimentConfig:
    """
    Scalar parameters of one experiment run.

    `seed` drives topology/mobility and the engine's random draws.
    `flow_seed` drives flow sampling; when it is None the sampler is
    seeded from the wall clock and flow selection is not reproducible.
    """
    x_size: int = X_SIZE
    y_size: int = Y_SIZE
    num_flows: int = NUM_FLOWS
    seed: int = SEED
    standard_phy: int = STANDARD_PHY
    step: float = STEP
    random_start: float = RANDOM_START
    total_time: float = TOTAL_TIME
    packet_interval: float = PACKET_INTERVAL
    time_start_flow_sources: float = TIME_START_FLOW_SOURCES
    packet_size: int = PACKET_SIZE
    n_ifaces: int = N_IFACES
    channels: bool = CHANNELS
    pcap: bool = PCAP
    stack: str = STACK
    root: str = ROOT
    flow_seed: Optional[int] = None
    dataset_path: str = DATASET_PATH
    output_dir: str = '.'

    @property
    def n_nodes(self) -> int:
        return self.x_size * self.y_size

    @property
    def phy(self) -> PhyStandard:
        return PhyStandard.from_selector(self.standard_phy)

    @property
    def max_packets(self) -> int:
        return int(self.total_time * (1 / self.packet_interval))

    def validate(self) -> 'ExperimentConfig':
        """Reject invalid parameter combinations before any simulation work."""
        if self.x_size < 1 or self.y_size < 1:
            raise ConfigurationError(
                f"Grid dimensions must be positive, got {self.x_size}x{self.y_size}")
        if self.n_nodes < 2:
            raise ConfigurationError(
                f"Grid {self.x_size}x{self.y_size} has no node besides the sink")
        if self.num_flows < 1:
            raise ConfigurationError(f"Number of flows must be >= 1, got {self.num_flows}")
        if self.num_flows > self.n_nodes - 1:
            raise ConfigurationError(
                f"Number of flows ({self.num_flows}) exceeds available source nodes "
                f"({self.n_nodes - 1}) in a {self.x_size}x{self.y_size} grid")

        positive = {
            'step': self.step,
            'total_time': self.total_time,
            'packet_interval': self.packet_interval,
            'time_start_flow_sources': self.time_start_flow_sources,
            'packet_size': self.packet_size,
            'n_ifaces': self.n_ifaces,
        }
        for name, value in positive.items():
            if value <= 0:
                raise ConfigurationError(f"{name} must be > 0, got {value}")
        if self.random_start < 0:
            raise ConfigurationError(f"random_start must be >= 0, got {self.random_start}")
        if self.packet_interval >= self.total_time:
            raise ConfigurationError(
                f"packet_interval ({self.packet_interval}) must be shorter than "
                f"total_time ({self.total_time})")
        return self

    def for_seed(self, seed: int, flow_seed: Optional[int] = None) -> 'ExperimentConfig':
        return replace(self, seed=seed, flow_seed=flow_seed)

    @classmethod
    def from_args(cls, args) -> 'ExperimentConfig':
        """Build a config from an argparse namespace produced by main.py."""
        return cls(
            x_size=args.x_size,
            y_size=args.y_size,
            num_flows=args.num_flows,
            seed=args.seed,
            standard_phy=args.standard_phy,
            step=args.step,
            random_start=args.start,
            total_time=args.time,
            packet_interval=args.packet_interval,
            time_start_flow_sources=args.time_start_flow_sources,
            packet_size=args.packet_size,
            n_ifaces=args.interfaces,
            channels=args.channels,
            pcap=args.pcap,
            stack=args.stack,
            root=args.root,
            flow_seed=args.flow_seed,
            dataset_path=args.dataset,
            output_dir=args.output_dir,
        )


def wall_clock_seed() -> int:
    """Seed from the nanosecond clock, distinct for runs started within one second."""
    return time.time_ns() % (2 ** 32)
