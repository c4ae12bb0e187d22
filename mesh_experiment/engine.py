"""
Simulation Engine.

`SimulationEngine` is the contract the experiment runner drives: install the
mesh stack and addresses, install sink/client applications, run for a fixed
simulated time, then hand back per-flow raw counters.

`GridMeshEngine` is an analytic stand-in for a packet-level simulator:
- Links exist between mesh points closer than the PHY radio range
- Hop count to the sink is the shortest path over those links
- Each hop drops a packet with a probability that grows with offered load
- Delay per hop = airtime + processing + exponential backoff
"""

import os
import re
import logging
import ipaddress
import xml.etree.ElementTree as ET
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Tuple, Optional

import numpy as np
import networkx as nx

from .config import (ExperimentConfig, PhyStandard, SINK_ID, SINK_PORT,
                     NETWORK_BASE, NETWORK_MASK, MESH_REPORT_PATTERN,
                     DOT11S_STACK, FLAME_STACK)
from .topology import GridTopology
from .flows import Flow, FlowAssignment

logger = logging.getLogger(__name__)

# IPv4 (20) + UDP (8) headers counted by the flow monitor
HEADER_BYTES = 28
PROCESSING_DELAY = 0.0005  # seconds per hop
BACKOFF_SLOT = 0.0002  # seconds, mean backoff on an idle channel
FIRST_SOURCE_PORT = 49153

SUPPORTED_STACKS = (DOT11S_STACK, FLAME_STACK)
BROADCAST_MAC = 'ff:ff:ff:ff:ff:ff'
_MAC_RE = re.compile(r'^([0-9a-fA-F]{2}:){5}[0-9a-fA-F]{2}$')


class EngineError(RuntimeError):
    """Unrecoverable failure inside the simulation engine."""


@dataclass(frozen=True)
class PhyProfile:
    name: str
    data_rate_mbps: float
    radio_range: float  # meters
    base_loss: float  # per-hop loss on an idle link at full range


PHY_PROFILES: Dict[PhyStandard, PhyProfile] = {
    PhyStandard.WIFI_80211A: PhyProfile('802.11a', 6.0, 120.0, 0.010),
    PhyStandard.WIFI_80211B: PhyProfile('802.11b', 1.0, 150.0, 0.015),
    PhyStandard.WIFI_80211G: PhyProfile('802.11g', 6.0, 130.0, 0.012),
    PhyStandard.WIFI_80211_10MHZ: PhyProfile('802.11 10MHz', 3.0, 140.0, 0.010),
    PhyStandard.WIFI_80211_5MHZ: PhyProfile('802.11 5MHz', 1.5, 160.0, 0.010),
    PhyStandard.WIFI_80211N_2_4GHZ: PhyProfile('802.11n 2.4GHz', 6.5, 125.0, 0.012),
}


@dataclass
class RawFlowStats:
    """Per-flow counters as reported by a flow monitor."""
    tx_bytes: int = 0
    rx_bytes: int = 0
    tx_packets: int = 0
    rx_packets: int = 0
    lost_packets: int = 0
    delay_sum: float = 0.0  # seconds
    jitter_sum: float = 0.0  # seconds
    times_forwarded: int = 0
    time_first_tx_packet: float = 0.0
    time_last_tx_packet: float = 0.0
    time_first_rx_packet: float = 0.0
    time_last_rx_packet: float = 0.0
    source_address: str = ''
    destination_address: str = ''
    source_port: int = 0
    destination_port: int = SINK_PORT


@dataclass(frozen=True)
class MeshDevice:
    """Mesh point device installed on one node."""
    index: int
    mac: str
    ipv4: str
    channels: Tuple[int, ...]
    mac_start: float  # seconds before the device starts sending


@dataclass(frozen=True)
class MeshNetwork:
    """Devices and addresses handed back by stack installation."""
    devices: Tuple[MeshDevice, ...]
    stack: str
    root: Optional[str]
    phy: PhyStandard

    def address_of(self, node_id: int) -> str:
        return self.devices[node_id].ipv4


@dataclass(frozen=True)
class ClientApp:
    flow: Flow
    address: str
    start: float
    stop: float
    max_packets: int
    interval: float
    packet_size: int
    source_port: int


class SimulationEngine(ABC):
    """Operations the experiment runner needs from a network simulator."""

    @abstractmethod
    def install_stack(self, topology: GridTopology, config: ExperimentConfig) -> MeshNetwork:
        """Install mesh devices, internet stack and addresses on every node."""

    @abstractmethod
    def install_applications(self, network: MeshNetwork, flows: FlowAssignment,
                             config: ExperimentConfig):
        """One sink on node 0 and one client per flow."""

    @abstractmethod
    def run(self, duration: float):
        """Blocking run until `duration` seconds of simulated time."""

    @abstractmethod
    def flow_stats(self) -> Dict[int, RawFlowStats]:
        """Raw counters keyed by flow id, available after run()."""

    @abstractmethod
    def report(self, output_dir: str) -> List[str]:
        """Write one diagnostic file per mesh device; return written paths."""

    @abstractmethod
    def serialize_flow_stats(self, path: str) -> bool:
        """Dump all raw flow counters; return False when the file could not be written."""


def parse_root(root: str) -> Optional[str]:
    """Validate the root MAC. Broadcast means 'no root'."""
    if not _MAC_RE.match(root or ''):
        raise EngineError(f"Malformed root MAC address: {root!r}")
    root = root.lower()
    return None if root == BROADCAST_MAC else root


def assign_addresses(n_nodes: int, base: str = NETWORK_BASE,
                     mask: str = NETWORK_MASK) -> List[str]:
    """Sequential host addresses from base/mask, one per device."""
    try:
        network = ipaddress.IPv4Network(f'{base}/{mask}')
    except ValueError as e:
        raise EngineError(f"Invalid address space {base}/{mask}: {e}") from e
    hosts = []
    for host in network.hosts():
        if len(hosts) == n_nodes:
            break
        hosts.append(str(host))
    if len(hosts) < n_nodes:
        raise EngineError(
            f"Address space {network} too small for {n_nodes} devices")
    return hosts


def device_mac(index: int) -> str:
    """Locally sequential MAC, 00:00:00:00:00:01 for node 0."""
    n = index + 1
    return f"00:00:00:00:{(n >> 8) & 0xff:02x}:{n & 0xff:02x}"


def _ns(seconds: float) -> str:
    return f"{seconds * 1e9:+.1f}ns"


class GridMeshEngine(SimulationEngine):
    """Analytic engine for static grid meshes."""

    def __init__(self):
        self.topology: Optional[GridTopology] = None
        self.network: Optional[MeshNetwork] = None
        self.config: Optional[ExperimentConfig] = None
        self.profile: Optional[PhyProfile] = None
        self.clients: List[ClientApp] = []
        self.paths: Dict[int, List[int]] = {}
        self._stats: Dict[int, RawFlowStats] = {}
        self._has_run = False

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def install_stack(self, topology: GridTopology, config: ExperimentConfig) -> MeshNetwork:
        if config.stack not in SUPPORTED_STACKS:
            raise EngineError(f"Unknown mesh stack: {config.stack}")
        root = parse_root(config.root)
        if root is not None and config.stack != DOT11S_STACK:
            # Root attribute only exists for 802.11s HWMP
            raise EngineError(f"Root mesh point is not supported by {config.stack}")
        if config.pcap:
            logger.warning("PCAP capture requested but %s produces no packet traces",
                           type(self).__name__)

        addresses = assign_addresses(topology.n_nodes)
        devices = []
        for node in topology.nodes:
            if config.channels:
                channels = tuple(36 + 4 * (i % 8) for i in range(config.n_ifaces))
            else:
                channels = (0,) * config.n_ifaces
            devices.append(MeshDevice(
                index=node.node_id,
                mac=device_mac(node.node_id),
                ipv4=addresses[node.node_id],
                channels=channels,
                mac_start=float(topology.rng.uniform(0, config.random_start))
            ))

        self.topology = topology
        self.config = config
        self.profile = PHY_PROFILES[config.phy]
        self.network = MeshNetwork(devices=tuple(devices), stack=config.stack,
                                   root=root, phy=config.phy)
        logger.debug("Installed %s on %d nodes (%s)", config.stack,
                     len(devices), self.profile.name)
        return self.network

    def install_applications(self, network: MeshNetwork, flows: FlowAssignment,
                             config: ExperimentConfig):
        if network is not self.network:
            raise EngineError("Applications must be installed on the engine's own network")
        sink_address = network.address_of(SINK_ID)
        self.clients = []
        for i, flow in enumerate(flows):
            self.clients.append(ClientApp(
                flow=flow,
                address=sink_address,
                start=flow.start_time,
                stop=config.total_time - 1,
                max_packets=config.max_packets,
                interval=config.packet_interval,
                packet_size=config.packet_size,
                source_port=FIRST_SOURCE_PORT + i
            ))
        logger.debug("UDP server on node %d (%s:%d), %d clients",
                     SINK_ID, sink_address, SINK_PORT, len(self.clients))

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def _per_hop_loss(self, mean_hops: float) -> Tuple[float, float]:
        """Per-hop loss and channel load for the installed traffic."""
        cfg = self.config
        wire_bits = (cfg.packet_size + HEADER_BYTES) * 8
        offered_bps = len(self.clients) * wire_bits / cfg.packet_interval
        n_channels = cfg.n_ifaces if cfg.channels else 1
        capacity_bps = self.profile.data_rate_mbps * 1e6 * n_channels
        load = offered_bps * max(mean_hops, 1.0) / capacity_bps

        link_ratio = min(self.topology.step / self.profile.radio_range, 1.0)
        loss = self.profile.base_loss * (1 + link_ratio ** 2) + 0.3 * load ** 2
        return float(np.clip(loss, 0.0, 0.95)), load

    def run(self, duration: float):
        if self.network is None:
            raise EngineError("run() called before install_stack()")

        hops = self.topology.hop_counts_to_sink(self.profile.radio_range)
        graph = self.topology.connectivity_graph(self.profile.radio_range)
        self.paths = {}
        for app in self.clients:
            if app.flow.source in hops:
                self.paths[app.flow.source] = nx.shortest_path(graph, app.flow.source, SINK_ID)

        reachable = [hops[app.flow.source] for app in self.clients if app.flow.source in hops]
        mean_hops = float(np.mean(reachable)) if reachable else 1.0
        per_hop_loss, load = self._per_hop_loss(mean_hops)
        logger.debug("Channel load %.3f, per-hop loss %.3f", load, per_hop_loss)

        self._stats = {}
        for app in self.clients:
            stats = self._simulate_client(app, hops.get(app.flow.source), per_hop_loss,
                                          load, duration)
            if stats is not None:
                self._stats[app.flow.flow_id] = stats
        self._has_run = True

    def _simulate_client(self, app: ClientApp, n_hops: Optional[int], per_hop_loss: float,
                         load: float, duration: float) -> Optional[RawFlowStats]:
        rng = self.topology.rng
        stop = min(app.stop, duration)
        if app.start >= stop:
            return None
        n_tx = min(app.max_packets, int(np.floor((stop - app.start) / app.interval)) + 1)
        tx_times = app.start + app.interval * np.arange(n_tx)

        wire_bytes = app.packet_size + HEADER_BYTES
        stats = RawFlowStats(
            tx_bytes=n_tx * wire_bytes,
            tx_packets=n_tx,
            time_first_tx_packet=float(tx_times[0]),
            time_last_tx_packet=float(tx_times[-1]),
            source_address=self.network.address_of(app.flow.source),
            destination_address=app.address,
            source_port=app.source_port,
        )

        if n_hops is None:
            # No route to the sink
            stats.lost_packets = n_tx
            return stats

        airtime = wire_bytes * 8 / (self.profile.data_rate_mbps * 1e6)
        p_delivery = (1 - per_hop_loss) ** n_hops
        delivered = rng.random_sample(n_tx) < p_delivery
        delivered &= tx_times >= self.network.devices[app.flow.source].mac_start

        backoff = rng.exponential(BACKOFF_SLOT * (1 + 10 * load) * n_hops, size=n_tx)
        delays = n_hops * (airtime + PROCESSING_DELAY) + backoff
        rx_times = tx_times + delays
        delivered &= rx_times <= duration

        rx_delays = delays[delivered]
        rx_packets = int(delivered.sum())
        stats.rx_packets = rx_packets
        stats.rx_bytes = rx_packets * wire_bytes
        stats.lost_packets = n_tx - rx_packets
        stats.times_forwarded = (n_hops - 1) * rx_packets
        if rx_packets:
            stats.delay_sum = float(rx_delays.sum())
            stats.jitter_sum = float(np.abs(np.diff(rx_delays)).sum())
            stats.time_first_rx_packet = float(rx_times[delivered].min())
            stats.time_last_rx_packet = float(rx_times[delivered].max())
        return stats

    def flow_stats(self) -> Dict[int, RawFlowStats]:
        if not self._has_run:
            raise EngineError("Flow statistics requested before run()")
        return dict(self._stats)

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def _device_counters(self) -> Dict[int, Dict[str, int]]:
        counters = {d.index: {'txFrames': 0, 'rxFrames': 0, 'fwdFrames': 0}
                    for d in self.network.devices}
        for app in self.clients:
            stats = self._stats.get(app.flow.flow_id)
            if stats is None:
                continue
            counters[app.flow.source]['txFrames'] += stats.tx_packets
            counters[SINK_ID]['rxFrames'] += stats.rx_packets
            for relay in self.paths.get(app.flow.source, [])[1:-1]:
                counters[relay]['fwdFrames'] += stats.rx_packets
        return counters

    def report(self, output_dir: str) -> List[str]:
        """Write mp-report-<n>.xml per device. Unwritable files are logged and skipped."""
        written = []
        counters = self._device_counters()
        for device in self.network.devices:
            path = os.path.join(output_dir, MESH_REPORT_PATTERN.format(device.index))
            root = ET.Element('MeshPointDevice', {
                'index': str(device.index),
                'address': device.mac,
                'ipv4': device.ipv4,
                'stack': self.network.stack,
                'root': self.network.root or BROADCAST_MAC,
                'phy': PHY_PROFILES[self.network.phy].name,
            })
            for i, channel in enumerate(device.channels):
                ET.SubElement(root, 'Interface', {'id': str(i), 'channel': str(channel)})
            ET.SubElement(root, 'Statistics',
                          {k: str(v) for k, v in counters[device.index].items()})
            try:
                tree = ET.ElementTree(root)
                ET.indent(tree)
                tree.write(path, encoding='utf-8', xml_declaration=True)
            except OSError as e:
                logger.error("Can't open file %s: %s", path, e)
                continue
            written.append(path)
        return written

    def serialize_flow_stats(self, path: str) -> bool:
        root = ET.Element('FlowMonitor')
        flow_stats = ET.SubElement(root, 'FlowStats')
        classifier = ET.SubElement(root, 'Ipv4FlowClassifier')
        for flow_id, s in sorted(self._stats.items()):
            ET.SubElement(flow_stats, 'Flow', {
                'flowId': str(flow_id),
                'timeFirstTxPacket': _ns(s.time_first_tx_packet),
                'timeFirstRxPacket': _ns(s.time_first_rx_packet),
                'timeLastTxPacket': _ns(s.time_last_tx_packet),
                'timeLastRxPacket': _ns(s.time_last_rx_packet),
                'delaySum': _ns(s.delay_sum),
                'jitterSum': _ns(s.jitter_sum),
                'txBytes': str(s.tx_bytes),
                'rxBytes': str(s.rx_bytes),
                'txPackets': str(s.tx_packets),
                'rxPackets': str(s.rx_packets),
                'lostPackets': str(s.lost_packets),
                'timesForwarded': str(s.times_forwarded),
            })
            ET.SubElement(classifier, 'Flow', {
                'flowId': str(flow_id),
                'sourceAddress': s.source_address,
                'destinationAddress': s.destination_address,
                'protocol': '17',
                'sourcePort': str(s.source_port),
                'destinationPort': str(s.destination_port),
            })
        try:
            tree = ET.ElementTree(root)
            ET.indent(tree)
            tree.write(path, encoding='utf-8', xml_declaration=True)
        except OSError as e:
            logger.error("Can't write flow statistics to %s: %s", path, e)
            return False
        return True
