"""
Generate RSSI Survey Dataset.

This script generates a synthetic RSSI survey of a single radio source
(Wi-Fi access point or BLE beacon): receivers are scattered in a cubic (or
square) area and record the RSSI of the source under the log-distance
propagation model, with Gaussian noise and a fraction of outlier readings
(multipath, obstructions, mislocated receivers).

Key Learning Objectives:
    - Understand the log-distance path-loss model in dBm
    - See how outliers corrupt least squares radio source estimates
    - Compare non-robust and LMedS robust estimation

Dataset files:
    readings.txt    receiver position and RSSI per reading
    is_outlier.txt  1 for readings contaminated as outliers
    config.json     radio source ground truth and generation parameters
"""

import argparse
import json
import sys
from pathlib import Path
from typing import Dict, Optional

import numpy as np

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from radiosource.rf import simulate_rssi_readings


PRESETS = {
    'baseline': {
        'description': 'Clean survey: 0.5 dB noise, no outliers',
        'noise_std_db': 0.5,
        'outlier_ratio': 0.0,
    },
    'outliers': {
        'description': '20% outliers with 10 dB spread',
        'noise_std_db': 0.5,
        'outlier_ratio': 0.2,
    },
    'harsh': {
        'description': '40% outliers, 1 dB noise, obstructed indoor path loss',
        'noise_std_db': 1.0,
        'outlier_ratio': 0.4,
        'path_loss_exponent': 2.8,
    },
}


def save_dataset(
    output_dir: Path,
    receiver_positions: np.ndarray,
    rssi: np.ndarray,
    is_outlier: np.ndarray,
    config: Dict,
) -> None:
    """Save dataset to disk."""
    output_dir.mkdir(parents=True, exist_ok=True)

    dims = receiver_positions.shape[1]
    axes = ", ".join(f"{axis} (m)" for axis in "xyz"[:dims])
    np.savetxt(
        output_dir / "readings.txt",
        np.column_stack([receiver_positions, rssi]),
        fmt="%.6f",
        header=f"{axes}, rssi (dBm)",
    )
    np.savetxt(
        output_dir / "is_outlier.txt",
        is_outlier.astype(int),
        fmt="%d",
        header="1 if reading is an outlier",
    )

    with open(output_dir / "config.json", "w") as f:
        json.dump(config, f, indent=2)

    print(f"\n  Saved dataset to: {output_dir}")
    print(f"    Readings: {len(rssi)} ({int(is_outlier.sum())} outliers)")


def generate_dataset(
    output_dir: str,
    preset: Optional[str] = None,
    num_readings: int = 200,
    dims: int = 3,
    area_size: float = 100.0,
    frequency: float = 2.4e9,
    transmitted_power_dbm: float = -20.0,
    path_loss_exponent: float = 2.0,
    noise_std_db: float = 0.5,
    outlier_ratio: float = 0.2,
    outlier_std_db: float = 10.0,
    seed: int = 42,
) -> None:
    """
    Generate and save an RSSI survey dataset.

    Args:
        output_dir: Output directory path.
        preset: Optional preset name overriding noise parameters.
        num_readings: Number of RSSI readings.
        dims: Spatial dimension (2 or 3).
        area_size: Side of the surveyed area in meters, centered at origin.
        frequency: Carrier frequency in Hz.
        transmitted_power_dbm: True transmitted power in dBm.
        path_loss_exponent: True path-loss exponent.
        noise_std_db: Inlier RSSI noise std in dB.
        outlier_ratio: Fraction of outlier readings.
        outlier_std_db: Outlier error std in dB.
        seed: Random seed for reproducibility.
    """
    if preset is not None:
        preset_config = PRESETS[preset]
        print(f"\nUsing preset: '{preset}'")
        print(f"Description: {preset_config['description']}")
        noise_std_db = preset_config.get('noise_std_db', noise_std_db)
        outlier_ratio = preset_config.get('outlier_ratio', outlier_ratio)
        path_loss_exponent = preset_config.get('path_loss_exponent', path_loss_exponent)

    rng = np.random.default_rng(seed)

    print("\n" + "=" * 70)
    print("Generating RSSI Survey Dataset")
    print("=" * 70)

    half = area_size / 2.0
    source_position = rng.uniform(-half, half, size=dims)
    receiver_positions = rng.uniform(-half, half, size=(num_readings, dims))

    print(f"\n1. Radio source")
    print(f"   Position: {np.array2string(source_position, precision=2)} m")
    print(f"   Transmitted power: {transmitted_power_dbm:.1f} dBm")
    print(f"   Path-loss exponent: {path_loss_exponent:.2f}")

    print(f"\n2. Simulating {num_readings} readings...")
    rssi, is_outlier = simulate_rssi_readings(
        source_position,
        receiver_positions,
        transmitted_power_dbm,
        frequency,
        path_loss_exponent=path_loss_exponent,
        noise_std_db=noise_std_db,
        outlier_ratio=outlier_ratio,
        outlier_std_db=outlier_std_db,
        rng=rng,
    )
    print(f"   RSSI range: [{rssi.min():.1f}, {rssi.max():.1f}] dBm")

    config = {
        "dataset_info": {
            "description": "Synthetic RSSI survey of a single radio source",
            "seed": seed,
            "preset": preset,
            "num_readings": num_readings,
            "dims": dims,
            "area_size_m": area_size,
        },
        "radio_source": {
            "identifier": "00:11:22:33:44:55",
            "frequency_hz": frequency,
            "position": source_position.tolist(),
            "transmitted_power_dbm": transmitted_power_dbm,
            "path_loss_exponent": path_loss_exponent,
        },
        "noise": {
            "noise_std_db": noise_std_db,
            "outlier_ratio": outlier_ratio,
            "outlier_std_db": outlier_std_db,
        },
    }

    print(f"\n3. Saving dataset...")
    save_dataset(Path(output_dir), receiver_positions, rssi, is_outlier, config)

    print("\n" + "=" * 70)
    print("Dataset generation complete!")
    print("=" * 70)


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Generate RSSI Survey Dataset",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Generate dataset with 20% outliers
  python scripts/generate_rssi_survey_dataset.py --preset outliers

  # Custom 2D survey
  python scripts/generate_rssi_survey_dataset.py \\
      --output data/sim/rssi_survey_2d \\
      --dims 2 --num-readings 100 --outlier-ratio 0.3

Available presets: """ + ", ".join(PRESETS.keys()),
    )

    parser.add_argument(
        "--preset",
        type=str,
        choices=PRESETS.keys(),
        help="Use preset configuration (overrides noise parameters)",
    )
    parser.add_argument(
        "--output",
        type=str,
        default="data/sim/rssi_survey",
        help="Output directory (default: data/sim/rssi_survey)",
    )
    parser.add_argument("--seed", type=int, default=42, help="Random seed (default: 42)")

    survey_group = parser.add_argument_group("Survey Parameters")
    survey_group.add_argument(
        "--num-readings", type=int, default=200, help="Number of readings (default: 200)"
    )
    survey_group.add_argument(
        "--dims", type=int, choices=[2, 3], default=3, help="Spatial dimension (default: 3)"
    )
    survey_group.add_argument(
        "--area-size", type=float, default=100.0, help="Area size in meters (default: 100.0)"
    )

    source_group = parser.add_argument_group("Radio Source Parameters")
    source_group.add_argument(
        "--frequency", type=float, default=2.4e9, help="Carrier frequency in Hz (default: 2.4e9)"
    )
    source_group.add_argument(
        "--power", type=float, default=-20.0, help="Transmitted power in dBm (default: -20.0)"
    )
    source_group.add_argument(
        "--path-loss", type=float, default=2.0, help="Path-loss exponent (default: 2.0)"
    )

    noise_group = parser.add_argument_group("Noise Parameters")
    noise_group.add_argument(
        "--noise-std", type=float, default=0.5, help="RSSI noise std in dB (default: 0.5)"
    )
    noise_group.add_argument(
        "--outlier-ratio", type=float, default=0.2, help="Fraction of outliers (default: 0.2)"
    )
    noise_group.add_argument(
        "--outlier-std", type=float, default=10.0, help="Outlier error std in dB (default: 10.0)"
    )

    args = parser.parse_args()

    if args.num_readings <= 0:
        parser.error("Number of readings must be positive")
    if not 0.0 <= args.outlier_ratio <= 1.0:
        parser.error("Outlier ratio must be in [0, 1]")

    generate_dataset(
        output_dir=args.output,
        preset=args.preset,
        num_readings=args.num_readings,
        dims=args.dims,
        area_size=args.area_size,
        frequency=args.frequency,
        transmitted_power_dbm=args.power,
        path_loss_exponent=args.path_loss,
        noise_std_db=args.noise_std,
        outlier_ratio=args.outlier_ratio,
        outlier_std_db=args.outlier_std,
        seed=args.seed,
    )


if __name__ == "__main__":
    main()
