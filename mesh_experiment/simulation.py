"""
Experiment Runner.
One run: grid -> mesh stack -> flows -> engine run -> metrics -> dataset.
A variance sweep repeats the run over consecutive seeds into one dataset.
A parameter sweep runs one variance sweep per parameter point.
"""

import os
import logging
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, List

from .config import ExperimentConfig, VARIANCE_RUNS, FLOW_STATS_FILE
from .topology import GridTopology, create_grid_topology
from .flows import FlowAssignment, create_flow_rng, sample_flows
from .engine import SimulationEngine, GridMeshEngine, MeshNetwork, RawFlowStats
from .metrics import DerivedMetrics, reduce_flow_stats
from .dataset import append_rows

logger = logging.getLogger(__name__)


@dataclass
class ExperimentResult:
    """Everything produced by one run."""
    config: ExperimentConfig
    topology: GridTopology
    network: MeshNetwork
    flows: FlowAssignment
    flow_stats: Dict[int, RawFlowStats]
    rows: List[DerivedMetrics]
    rows_written: int = 0
    report_files: List[str] = field(default_factory=list)

    @property
    def qualifying_flows(self) -> int:
        return len(self.rows)


class ExperimentRunner:
    """
    Drives one experiment through a simulation engine.

    `engine_factory` returns a fresh engine per run, so nothing leaks
    between the runs of a sweep.
    """

    def __init__(self, engine_factory: Callable[[], SimulationEngine] = GridMeshEngine,
                 write_dataset: bool = True, write_reports: bool = True):
        self.engine_factory = engine_factory
        self.write_dataset = write_dataset
        self.write_reports = write_reports

    def run(self, config: ExperimentConfig) -> ExperimentResult:
        config.validate()
        logger.info("Run seed=%d grid=%dx%d flows=%d phy=%s time=%gs",
                    config.seed, config.x_size, config.y_size, config.num_flows,
                    config.phy.name, config.total_time)

        # 1. Nodes and mobility
        topology = create_grid_topology(config.x_size, config.y_size,
                                        config.step, config.seed)

        # 2. Mesh stack and addresses
        engine = self.engine_factory()
        network = engine.install_stack(topology, config)

        # 3. Flows
        flow_rng = create_flow_rng(config.flow_seed)
        flows = sample_flows(topology.n_nodes, config.num_flows, flow_rng,
                             base_offset=config.time_start_flow_sources)
        engine.install_applications(network, flows, config)

        # 4. Simulate
        engine.run(config.total_time)

        report_files = []
        if self.write_reports:
            try:
                os.makedirs(config.output_dir, exist_ok=True)
            except OSError as e:
                logger.error("Cannot create output directory %s: %s", config.output_dir, e)
            report_files = engine.report(config.output_dir)
            engine.serialize_flow_stats(os.path.join(config.output_dir, FLOW_STATS_FILE))

        # 5. Reduce and persist
        flow_stats = engine.flow_stats()
        rows = reduce_flow_stats(flow_stats, config)
        written = append_rows(rows, config.dataset_path) if self.write_dataset else 0

        logger.info("Seed %d: %d/%d flows delivered data", config.seed,
                    len(rows), len(flows))
        return ExperimentResult(config=config, topology=topology, network=network,
                                flows=flows, flow_stats=flow_stats, rows=rows,
                                rows_written=written, report_files=report_files)

    def run_variance_sweep(self, config: ExperimentConfig,
                           runs: int = VARIANCE_RUNS) -> List[ExperimentResult]:
        """
        Repeat the run for seeds seed .. seed+runs-1, sequentially.
        A given flow_seed advances with the seed so the sweep is reproducible.
        """
        config.validate()
        results = []
        for i in range(runs):
            flow_seed = None if config.flow_seed is None else config.flow_seed + i
            results.append(self.run(config.for_seed(config.seed + i, flow_seed)))
        total = sum(r.qualifying_flows for r in results)
        logger.info("Variance sweep: %d runs, %d rows", runs, total)
        return results

    def run_parameter_sweep(self, config: ExperimentConfig, points: List[Dict],
                            runs: int = VARIANCE_RUNS) -> List[ExperimentResult]:
        """
        One variance sweep per parameter point, all into the same dataset.
        Every point is validated before the first run.
        """
        configs = [replace(config, **overrides).validate() for overrides in points]
        results = []
        for overrides, point_config in zip(points, configs):
            logger.info("Parameter point %s", overrides)
            results.extend(self.run_variance_sweep(point_config, runs))
        logger.info("Parameter sweep: %d points, %d runs", len(points), len(results))
        return results


def run_experiment(config: ExperimentConfig,
                   engine_factory: Callable[[], SimulationEngine] = GridMeshEngine) -> ExperimentResult:
    return ExperimentRunner(engine_factory).run(config)


def run_variance_sweep(config: ExperimentConfig, runs: int = VARIANCE_RUNS,
                       engine_factory: Callable[[], SimulationEngine] = GridMeshEngine
                       ) -> List[ExperimentResult]:
    return ExperimentRunner(engine_factory).run_variance_sweep(config, runs)


def run_parameter_sweep(config: ExperimentConfig, points: List[Dict],
                        runs: int = VARIANCE_RUNS,
                        engine_factory: Callable[[], SimulationEngine] = GridMeshEngine
                        ) -> List[ExperimentResult]:
    return ExperimentRunner(engine_factory).run_parameter_sweep(config, points, runs)
