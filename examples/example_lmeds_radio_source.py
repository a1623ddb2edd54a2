"""
LMedS Robust Radio Source Estimation.

This script estimates the position and transmitted power of a radio source
from RSSI readings contaminated with outliers, and compares the LMedS robust
estimator against a plain nonlinear least squares fit over all readings.

Can run with:
    - Pre-generated dataset: python example_lmeds_radio_source.py --data rssi_survey
    - Inline data (default): python example_lmeds_radio_source.py
    - Custom configuration: python example_lmeds_radio_source.py --config config.json
"""

import argparse
import json
import logging
import time
from pathlib import Path
from typing import Dict, List, Optional

import matplotlib.pyplot as plt
import numpy as np
from tqdm import tqdm

from radiosource.config import RobustEstimatorConfig
from radiosource.estimators import (
    LMedSRobustRssiRadioSourceEstimator,
    RadioSourceEstimatorListener,
    RssiRadioSourceEstimator,
)
from radiosource.exceptions import EstimationError
from radiosource.rf import RadioSource, RssiReading, simulate_rssi_readings

FREQUENCY = 2.4e9  # Hz
AREA_SIZE = 100.0  # m
OUTLIER_RATIOS = [0.0, 0.1, 0.2, 0.3, 0.4]


class IterationCounter(RadioSourceEstimatorListener):
    """Counts robust search iterations."""

    def __init__(self):
        self.iterations = 0

    def on_estimate_start(self, estimator):
        self.iterations = 0

    def on_estimate_next_iteration(self, estimator, iteration):
        self.iterations = iteration


def load_rssi_dataset(data_dir: str) -> Dict:
    """Load RSSI survey dataset.

    Args:
        data_dir: Path to dataset directory (e.g., 'data/sim/rssi_survey')

    Returns:
        Dictionary with readings, outlier flags and config
    """
    path = Path(data_dir)

    with open(path / 'config.json') as f:
        config = json.load(f)

    table = np.loadtxt(path / 'readings.txt', ndmin=2)
    source_config = config['radio_source']
    source = RadioSource(source_config['identifier'], source_config['frequency_hz'])
    readings = [RssiReading(source, row[-1], row[:-1]) for row in table]

    return {
        'readings': readings,
        'is_outlier': np.loadtxt(path / 'is_outlier.txt').astype(bool),
        'config': config,
    }


def make_robust_estimator(
    readings: List[RssiReading],
    config: Optional[RobustEstimatorConfig],
    seed: int,
) -> LMedSRobustRssiRadioSourceEstimator:
    estimator = LMedSRobustRssiRadioSourceEstimator(rng=seed)
    if config is not None:
        estimator.configure(config)
    estimator.readings = readings
    return estimator


def run_with_dataset(
    data_dir: str,
    config: Optional[RobustEstimatorConfig],
    seed: int,
) -> Dict:
    """Run robust and non-robust estimation on a pre-generated dataset."""
    data = load_rssi_dataset(data_dir)
    readings = data['readings']
    truth = data['config']['radio_source']
    true_position = np.array(truth['position'])

    print("\n" + "=" * 70)
    print(f"RSSI survey: {len(readings)} readings, "
          f"{int(data['is_outlier'].sum())} outliers")
    print("=" * 70)

    listener = IterationCounter()
    estimator = make_robust_estimator(readings, config, seed)
    estimator.listener = listener

    start = time.time()
    robust = estimator.estimate()
    robust_time = time.time() - start

    least_squares = None
    try:
        least_squares = RssiRadioSourceEstimator(readings).estimate()
    except EstimationError as e:
        print(f"  Least squares failed: {e}")

    print(f"\n{'Method':<16} {'Position error':<18} {'Power (dBm)':<14} {'Path loss':<10}")
    print("-" * 70)
    print(f"{'Truth':<16} {'-':<18} {truth['transmitted_power_dbm']:<14.2f} "
          f"{truth['path_loss_exponent']:<10.2f}")
    if least_squares is not None:
        error = np.linalg.norm(least_squares.position - true_position)
        print(f"{'Least squares':<16} {error:<18.3f} "
              f"{least_squares.transmitted_power_dbm:<14.2f} "
              f"{least_squares.path_loss_exponent:<10.2f}")
    error = np.linalg.norm(robust.position - true_position)
    print(f"{'LMedS':<16} {error:<18.3f} {robust.transmitted_power_dbm:<14.2f} "
          f"{robust.path_loss_exponent:<10.2f}")

    inliers = estimator.inliers_data
    detected = ~inliers.inliers
    print(f"\nLMedS: {listener.iterations} iterations in {robust_time:.3f}s")
    print(f"  Inliers: {inliers.num_inliers}/{len(readings)} "
          f"(threshold {inliers.threshold:.3f} dB)")
    print(f"  Outliers detected: {int(np.sum(detected & data['is_outlier']))}"
          f"/{int(data['is_outlier'].sum())}")

    return {
        'readings': readings,
        'true_position': true_position,
        'robust': robust,
        'least_squares': least_squares,
        'inliers': inliers.inliers,
    }


def run_inline_comparison(
    config: Optional[RobustEstimatorConfig],
    seed: int,
    trials: int,
    num_readings: int = 100,
) -> Dict[str, np.ndarray]:
    """Monte Carlo comparison of position errors versus outlier ratio."""
    rng = np.random.default_rng(seed)
    source = RadioSource("00:11:22:33:44:55", FREQUENCY)
    half = AREA_SIZE / 2.0

    results = {"LS": np.full((len(OUTLIER_RATIOS), trials), np.nan),
               "LMedS": np.full((len(OUTLIER_RATIOS), trials), np.nan)}

    for i, outlier_ratio in enumerate(
        tqdm(OUTLIER_RATIOS, desc="Overall progress", unit="level")
    ):
        for t in tqdm(range(trials), desc=f"  {outlier_ratio:.0%} outliers", leave=False):
            true_position = rng.uniform(-half, half, size=3)
            power_dbm = rng.uniform(-30.0, -10.0)
            receivers = rng.uniform(-half, half, size=(num_readings, 3))
            rssi, _ = simulate_rssi_readings(
                true_position, receivers, power_dbm, FREQUENCY,
                noise_std_db=0.5, outlier_ratio=outlier_ratio, rng=rng,
            )
            readings = [RssiReading(source, r, p) for r, p in zip(rssi, receivers)]

            try:
                estimate = RssiRadioSourceEstimator(readings).estimate()
                results["LS"][i, t] = np.linalg.norm(estimate.position - true_position)
            except EstimationError:
                pass

            estimator = make_robust_estimator(readings, config, int(rng.integers(2**31)))
            try:
                estimate = estimator.estimate()
                results["LMedS"][i, t] = np.linalg.norm(estimate.position - true_position)
            except EstimationError:
                pass

    print("\n" + "=" * 70)
    print("Results Summary (median position error in meters)")
    print("=" * 70)
    print(f"{'Outliers':<12} {'LS':<12} {'LMedS':<12}")
    print("-" * 70)
    for i, outlier_ratio in enumerate(OUTLIER_RATIOS):
        print(f"{outlier_ratio:<12.0%} {np.nanmedian(results['LS'][i]):<12.3f} "
              f"{np.nanmedian(results['LMedS'][i]):<12.3f}")

    return results


def plot_dataset_results(results: Dict):
    """Plot readings, inliers and estimated positions (x-y projection)."""
    positions = np.array([reading.position for reading in results['readings']])
    inliers = results['inliers']

    fig, ax = plt.subplots(figsize=(8, 8))
    ax.scatter(positions[inliers, 0], positions[inliers, 1], s=12, c='tab:blue',
               label='Inlier readings')
    ax.scatter(positions[~inliers, 0], positions[~inliers, 1], s=12, c='tab:red',
               marker='x', label='Outlier readings')
    ax.plot(*results['true_position'][:2], 'k*', markersize=16, label='True source')
    ax.plot(*results['robust'].position[:2], 'go', markersize=10, label='LMedS')
    if results['least_squares'] is not None:
        ax.plot(*results['least_squares'].position[:2], 'ms', markersize=10,
                label='Least squares')
    ax.set_xlabel('x (m)')
    ax.set_ylabel('y (m)')
    ax.set_title('Radio Source Estimation from RSSI')
    ax.axis('equal')
    ax.legend()
    ax.grid(True, alpha=0.3)
    return fig


def plot_inline_comparison(results: Dict[str, np.ndarray]):
    """Plot median position error versus outlier ratio."""
    fig, ax = plt.subplots(figsize=(10, 6))
    ratios = np.array(OUTLIER_RATIOS) * 100.0
    for method, marker in (("LS", "s-"), ("LMedS", "o-")):
        ax.semilogy(ratios, np.nanmedian(results[method], axis=1), marker,
                    label=method, linewidth=2)
    ax.set_xlabel('Outliers (%)')
    ax.set_ylabel('Median position error (m)')
    ax.set_title('Position Error vs. Outlier Ratio')
    ax.legend()
    ax.grid(True, alpha=0.3)
    return fig


def main():
    """Run LMedS radio source estimation."""
    parser = argparse.ArgumentParser(
        description="LMedS Robust Radio Source Estimation from RSSI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Monte Carlo comparison with inline generated data (default)
  python example_lmeds_radio_source.py --trials 20

  # Run with pre-generated dataset
  python scripts/generate_rssi_survey_dataset.py --preset outliers
  python example_lmeds_radio_source.py --data rssi_survey

  # Estimate the path-loss exponent too
  echo '{"path_loss_estimation_enabled": true}' > config.json
  python example_lmeds_radio_source.py --config config.json
        """
    )
    parser.add_argument(
        "--data", type=str, default=None,
        help="Dataset name or path (e.g., 'rssi_survey' or full path)"
    )
    parser.add_argument(
        "--config", type=str, default=None,
        help="JSON file with robust estimator configuration"
    )
    parser.add_argument("--seed", type=int, default=42, help="Random seed (default: 42)")
    parser.add_argument(
        "--trials", type=int, default=10,
        help="Monte Carlo trials per outlier ratio (default: 10)"
    )
    parser.add_argument(
        "--output", type=str, default=None,
        help="Output file for figure (default: examples/figs/lmeds_radio_source.png)"
    )
    parser.add_argument("--no-plot", action="store_true", help="Skip plotting")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
    )

    config = RobustEstimatorConfig.from_json(args.config) if args.config else None
    if config is not None and config.seed is not None:
        args.seed = config.seed

    overall_start = time.time()

    if args.data:
        data_path = Path(args.data)
        if not data_path.exists():
            data_path = Path("data/sim") / args.data
        if not data_path.exists():
            print(f"Error: Dataset not found at '{args.data}' or 'data/sim/{args.data}'")
            print("\nGenerate one with: python scripts/generate_rssi_survey_dataset.py")
            return

        results = run_with_dataset(str(data_path), config, args.seed)
        fig = None if args.no_plot else plot_dataset_results(results)
    else:
        results = run_inline_comparison(config, args.seed, args.trials)
        fig = None if args.no_plot else plot_inline_comparison(results)

    if fig is not None:
        output_file = args.output or "examples/figs/lmeds_radio_source.png"
        Path(output_file).parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(output_file, dpi=150, bbox_inches="tight")
        print(f"\n✓ Figure saved: {output_file}")
        plt.show()

    overall_time = time.time() - overall_start
    print("\n" + "=" * 70)
    print("Estimation completed successfully!")
    print(f"Total execution time: {overall_time:.2f} seconds")
    print("=" * 70)


if __name__ == "__main__":
    main()
