"""
Variance analysis of a dataset built by a seed sweep.
"""

import logging
import numpy as np
import pandas as pd
from scipy.stats import t
from typing import List, Optional

from .dataset import PARAMETER_COLUMNS, METRIC_COLUMNS

logger = logging.getLogger(__name__)

DEFAULT_METRICS = ['DeliveryRate', 'Throughput', 'DelayMean', 'JitterMean',
                   'MeanHopCount', 'PacketLossRatio']


def confidence_half_width(values: pd.Series, confidence: float = 0.95) -> float:
    """Student-t half width of the mean; NaN with fewer than two samples."""
    values = values.dropna()
    n = len(values)
    if n < 2:
        return float('nan')
    sem = values.std(ddof=1) / np.sqrt(n)
    return float(t.ppf((1 + confidence) / 2, df=n - 1) * sem)


def summarize_dataset(df: pd.DataFrame, metrics: Optional[List[str]] = None,
                      confidence: float = 0.95) -> pd.DataFrame:
    """
    Per parameter combination (every parameter except Seed), report
    count / mean / std / ci of each metric across seeds and flows.

    Returns a long-format frame: one row per (parameters, metric).
    """
    metrics = metrics or DEFAULT_METRICS
    unknown = [m for m in metrics if m not in METRIC_COLUMNS]
    if unknown:
        raise ValueError(f"Unknown metric columns: {unknown}")

    group_cols = [c for c in PARAMETER_COLUMNS if c != 'Seed']
    records = []
    for key, group in df.groupby(group_cols, sort=True):
        params = dict(zip(group_cols, key))
        n_seeds = group['Seed'].nunique()
        for metric in metrics:
            values = group[metric].dropna()
            records.append({
                **params,
                'Seeds': n_seeds,
                'Metric': metric,
                'Count': len(values),
                'Mean': values.mean() if len(values) else np.nan,
                'Std': values.std(ddof=1) if len(values) > 1 else np.nan,
                'CI': confidence_half_width(values, confidence),
            })

    summary = pd.DataFrame.from_records(
        records, columns=group_cols + ['Seeds', 'Metric', 'Count', 'Mean', 'Std', 'CI'])
    logger.debug("Summarized %d rows into %d groups", len(df), len(summary))
    return summary


def print_summary(summary: pd.DataFrame):
    """Console table of the variance summary."""
    if summary.empty:
        print("  (dataset is empty)")
        return
    print(f"\n  {'Grid':<8} {'Flows':>5} {'Metric':<18} {'N':>5} {'Mean':>12} {'Std':>12} {'95% CI':>12}")
    print("  " + "-" * 78)
    for _, row in summary.iterrows():
        grid = f"{int(row['xSize'])}x{int(row['ySize'])}"
        print(f"  {grid:<8} {int(row['NumberFlows']):>5} {row['Metric']:<18} {int(row['Count']):>5} {row['Mean']:>12.4f} "
              f"{row['Std']:>12.4f} {row['CI']:>12.4f}")
