"""
Metrics Reducer.
Turns raw per-flow counters into the KPIs stored in the dataset.
"""

import math
import logging
from dataclasses import dataclass, astuple, fields
from typing import Dict, List, Optional

from .config import ExperimentConfig, THROUGHPUT_WINDOW
from .engine import RawFlowStats

logger = logging.getLogger(__name__)

# Value of a metric whose denominator is zero (e.g. jitter of a single packet)
NOT_APPLICABLE = None

MEGABIT = 1024 * 1024


def safe_ratio(numerator: float, denominator: float) -> Optional[float]:
    """numerator / denominator, or NOT_APPLICABLE when the quotient is undefined."""
    if denominator == 0 or not math.isfinite(denominator) or not math.isfinite(numerator):
        return NOT_APPLICABLE
    return numerator / denominator


@dataclass(frozen=True)
class DerivedMetrics:
    """
    One dataset row: experiment parameters followed by the flow's KPIs.
    Field order is the dataset column order.
    """
    x_size: int
    y_size: int
    num_flows: int
    seed: int
    standard_phy: int
    step: float
    packet_size: int
    packet_interval: float
    total_time: float

    delivery_rate: Optional[float]
    throughput: Optional[float]
    delay_mean: Optional[float]
    jitter_mean: Optional[float]

    tx_bytes: int
    rx_bytes: int
    tx_packets: int
    rx_packets: int
    lost_packets: int
    delay_sum: float
    jitter_sum: float

    mean_transmitted_packet_size: Optional[float]
    mean_transmitted_bitrate: Optional[float]
    mean_hop_count: Optional[float]
    packet_loss_ratio: Optional[float]
    mean_received_packet_size: Optional[float]
    mean_received_bitrate: Optional[float]

    def values(self) -> tuple:
        return astuple(self)

    @classmethod
    def field_names(cls) -> List[str]:
        return [f.name for f in fields(cls)]


def derive_metrics(stats: RawFlowStats, config: ExperimentConfig) -> DerivedMetrics:
    """
    KPIs of one flow.

    Throughput is rxBytes*8 over a fixed 10 s window in Mbit, not over the
    flow's actual duration.
    """
    hops_per_packet = safe_ratio(stats.times_forwarded, stats.rx_packets)
    delivery = safe_ratio(stats.rx_packets, stats.tx_packets)

    return DerivedMetrics(
        x_size=config.x_size,
        y_size=config.y_size,
        num_flows=config.num_flows,
        seed=config.seed,
        standard_phy=config.standard_phy,
        step=config.step,
        packet_size=config.packet_size,
        packet_interval=config.packet_interval,
        total_time=config.total_time,

        delivery_rate=None if delivery is None else delivery * 100.0,
        throughput=safe_ratio(stats.rx_bytes * 8.0, THROUGHPUT_WINDOW * MEGABIT),
        delay_mean=safe_ratio(stats.delay_sum, stats.rx_packets),
        jitter_mean=safe_ratio(stats.jitter_sum, stats.rx_packets - 1),

        tx_bytes=stats.tx_bytes,
        rx_bytes=stats.rx_bytes,
        tx_packets=stats.tx_packets,
        rx_packets=stats.rx_packets,
        lost_packets=stats.lost_packets,
        delay_sum=stats.delay_sum,
        jitter_sum=stats.jitter_sum,

        mean_transmitted_packet_size=safe_ratio(stats.tx_bytes, stats.tx_packets),
        mean_transmitted_bitrate=safe_ratio(
            stats.tx_bytes * 8.0,
            stats.time_last_tx_packet - stats.time_first_tx_packet),
        mean_hop_count=None if hops_per_packet is None else hops_per_packet + 1,
        packet_loss_ratio=safe_ratio(stats.lost_packets,
                                     stats.rx_packets + stats.lost_packets),
        mean_received_packet_size=safe_ratio(stats.rx_bytes, stats.rx_packets),
        mean_received_bitrate=safe_ratio(
            stats.rx_bytes * 8.0,
            stats.time_last_rx_packet - stats.time_first_rx_packet),
    )


def reduce_flow_stats(flow_stats: Dict[int, RawFlowStats],
                      config: ExperimentConfig) -> List[DerivedMetrics]:
    """Derive one row per flow that delivered at least one byte, in flow id order."""
    rows = []
    skipped = 0
    for flow_id in sorted(flow_stats):
        stats = flow_stats[flow_id]
        if stats.rx_bytes <= 0:
            skipped += 1
            continue
        rows.append(derive_metrics(stats, config))
    if skipped:
        logger.debug("%d flow(s) delivered nothing and were left out", skipped)
    return rows
