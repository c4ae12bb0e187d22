"""
Mesh Grid Experiment Driver
Builds a WxH mesh grid, sends UDP flows toward node 0, and appends one
row of derived metrics per delivering flow to a semicolon-delimited dataset.
"""

import os
import argparse
import logging
from dataclasses import replace

from mesh_experiment import config as defaults
from mesh_experiment.config import ExperimentConfig, ConfigurationError
from mesh_experiment.topology import create_grid_topology
from mesh_experiment.simulation import ExperimentRunner
from mesh_experiment.dataset import load_dataset
from mesh_experiment.analysis import summarize_dataset, print_summary
from mesh_experiment.visualization import plot_grid_topology, plot_metric_variance

logger = logging.getLogger(__name__)


def str2bool(value) -> bool:
    if isinstance(value, bool):
        return value
    if value.lower() in ('1', 'true', 'yes', 'on'):
        return True
    if value.lower() in ('0', 'false', 'no', 'off'):
        return False
    raise argparse.ArgumentTypeError(f"Boolean value expected, got {value!r}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Mesh grid experiment driver")
    parser.add_argument('--x-size', dest='x_size', type=int, default=defaults.X_SIZE,
                        help="Number of nodes in a row grid. [%(default)s]")
    parser.add_argument('--y-size', dest='y_size', type=int, default=defaults.Y_SIZE,
                        help="Number of rows in a grid. [%(default)s]")
    parser.add_argument('--numFlows', dest='num_flows', type=int, default=defaults.NUM_FLOWS,
                        help="Number of flows. [%(default)s]")
    parser.add_argument('--seed', type=int, default=defaults.SEED,
                        help="Seed for topology and engine randomness. [%(default)s]")
    parser.add_argument('--flow-seed', dest='flow_seed', type=int, default=None,
                        help="Seed for flow sampling (wall clock when omitted)")
    parser.add_argument('--standardPhy', dest='standard_phy', type=int,
                        default=defaults.STANDARD_PHY,
                        help="PHY: 1=802.11a 2=802.11b 3=802.11g 4=10MHz 5=5MHz, "
                             "other=802.11n 2.4GHz. [%(default)s]")
    parser.add_argument('--step', type=float, default=defaults.STEP,
                        help="Size of edge in our grid, meters. [%(default)s m]")
    parser.add_argument('--start', type=float, default=defaults.RANDOM_START,
                        help="Maximum random start delay, seconds. [%(default)s s]")
    parser.add_argument('--time', type=float, default=defaults.TOTAL_TIME,
                        help="Simulation time, seconds. [%(default)s s]")
    parser.add_argument('--packet-interval', dest='packet_interval', type=float,
                        default=defaults.PACKET_INTERVAL,
                        help="Interval between packets in UDP ping, seconds. [%(default)s s]")
    parser.add_argument('--timeStartFlowSources', dest='time_start_flow_sources', type=float,
                        default=defaults.TIME_START_FLOW_SOURCES,
                        help="Time to start source flows, seconds. [%(default)s s]")
    parser.add_argument('--packet-size', dest='packet_size', type=int,
                        default=defaults.PACKET_SIZE,
                        help="Size of packets in UDP ping. [%(default)s]")
    parser.add_argument('--interfaces', type=int, default=defaults.N_IFACES,
                        help="Number of radio interfaces per mesh point. [%(default)s]")
    parser.add_argument('--channels', type=str2bool, default=defaults.CHANNELS,
                        help="Use different frequency channels for different interfaces. [%(default)s]")
    parser.add_argument('--pcap', type=str2bool, default=defaults.PCAP,
                        help="Enable PCAP traces on interfaces. [%(default)s]")
    parser.add_argument('--stack', default=defaults.STACK,
                        help="Type of protocol stack. [%(default)s]")
    parser.add_argument('--root', default=defaults.ROOT,
                        help="MAC address of root mesh point in HWMP. [%(default)s]")
    parser.add_argument('--runs', type=int, default=1,
                        help="Consecutive seeds to run (variance sweep). [%(default)s]")
    parser.add_argument('--sweep', choices=sorted(defaults.PARAMETER_SWEEPS), default=None,
                        help="Parameter sweep: one variance sweep per value of packet "
                             "interval, packet size, square grid size or grid width")
    parser.add_argument('--dataset', default=defaults.DATASET_PATH,
                        help="Dataset file. [%(default)s]")
    parser.add_argument('--output-dir', dest='output_dir', default='.',
                        help="Directory for mp-report-*.xml and results.xml. [%(default)s]")
    parser.add_argument('--summary', action='store_true',
                        help="Print per-metric variance summary of the dataset")
    parser.add_argument('--plot', action='store_true',
                        help="Save topology and delivery-rate plots to the output dir")
    parser.add_argument('--log-level', dest='log_level', default='INFO',
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'])
    return parser


def setup_logging(level: str = 'INFO'):
    logging.basicConfig(
        level=getattr(logging, level),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler()]
    )


def fmt(value, format_spec: str) -> str:
    return 'NA' if value is None else format(value, format_spec)


def print_run(result):
    cfg = result.config
    print(f"\n  Seed {cfg.seed}: grid {cfg.x_size}x{cfg.y_size}, sources {list(result.flows.sources)}")
    print(f"  {'Flow':<6} {'Src':>4} {'Delivery%':>10} {'Thr(Mb)':>10} {'Delay(s)':>10} {'Hops':>6}")
    print("  " + "-" * 52)
    sources = {f.flow_id: f.source for f in result.flows}
    delivering = [fid for fid in sorted(result.flow_stats)
                  if result.flow_stats[fid].rx_bytes > 0]
    for flow_id, row in zip(delivering, result.rows):
        print(f"  {flow_id:<6} {sources.get(flow_id, '?'):>4} {fmt(row.delivery_rate, '.2f'):>10} "
              f"{fmt(row.throughput, '.4f'):>10} {fmt(row.delay_mean, '.5f'):>10} "
              f"{fmt(row.mean_hop_count, '.2f'):>6}")
    print(f"  Rows appended: {result.rows_written}")


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.log_level)

    try:
        config = ExperimentConfig.from_args(args).validate()
        if args.runs < 1:
            raise ConfigurationError(f"--runs must be >= 1, got {args.runs}")
        points = defaults.PARAMETER_SWEEPS[args.sweep] if args.sweep else []
        for overrides in points:
            replace(config, **overrides).validate()
    except ConfigurationError as e:
        parser.error(str(e))

    print("\n" + "=" * 70)
    print("                 MESH GRID EXPERIMENT")
    print("=" * 70)
    print(f"  Grid: {config.x_size}x{config.y_size} (step {config.step:g} m), "
          f"flows: {config.num_flows}, PHY: {config.phy.name}")
    print(f"  Time: {config.total_time:g} s, packet {config.packet_size} B every "
          f"{config.packet_interval:g} s, stack {config.stack}")
    print(f"  Seeds: {config.seed}..{config.seed + args.runs - 1}, dataset: {config.dataset_path}")
    if points:
        print(f"  Sweep: {args.sweep}, {len(points)} points")
    print("=" * 70)

    create_grid_topology(config.x_size, config.y_size, config.step, config.seed).print_summary()

    runner = ExperimentRunner()
    if points:
        results = runner.run_parameter_sweep(config, points, runs=args.runs)
    else:
        results = runner.run_variance_sweep(config, runs=args.runs)
    for result in results:
        print_run(result)

    if args.summary or args.plot:
        if os.path.exists(config.dataset_path):
            df = load_dataset(config.dataset_path)
        else:
            logger.warning("Dataset %s not found, nothing to summarize", config.dataset_path)
            df = None

        if args.summary and df is not None:
            print("\n" + "-" * 70)
            print("| VARIANCE SUMMARY                                                   |")
            print("-" * 70)
            print_summary(summarize_dataset(df))

        if args.plot:
            last = results[-1]
            plot_grid_topology(last.topology, last.flows, phy=config.phy,
                               save_path=os.path.join(config.output_dir, 'grid_topology.png'))
            if df is not None:
                plot_metric_variance(df, 'DeliveryRate',
                                     save_path=os.path.join(config.output_dir,
                                                            'delivery_rate_variance.png'))

    print("=" * 70)
    return results


if __name__ == '__main__':
    main()
