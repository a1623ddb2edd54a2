"""
RSS propagation models for radio source estimation.

This module implements the isotropic log-distance propagation model used to
relate the transmitted power of a radio source to the power received at a
given distance:

    Pr = Pte * (c / (4*pi*f))^n / d^n

where:
    Pr: received power (mW)
    Pte: equivalent transmitted power (mW), Pte = Pt*Gt*Gr
    c: speed of light (m/s)
    f: carrier frequency (Hz)
    n: path-loss exponent (2.0 in free space)
    d: distance between radio source and receiver (m)

For numerical accuracy every estimator works with the logarithmic form:

    Pr (dBm) = Pte (dBm) + 10*n*log10(c / (4*pi*f)) - 10*n*log10(d)

Non-physical inputs (non-positive distances, frequencies or linear powers)
are rejected with InvalidPropagationInputError instead of propagating NaN or
infinite values into residual computations.
"""

from typing import Optional, Tuple, Union

import numpy as np

from radiosource.exceptions import InvalidPropagationInputError

# Physical constants
SPEED_OF_LIGHT = 299792458.0  # m/s

# Free space path-loss exponent
DEFAULT_PATH_LOSS_EXPONENT = 2.0

ArrayLike = Union[float, np.ndarray]


def _check_positive(name: str, value: ArrayLike) -> None:
    """Reject non-positive or non-finite model inputs."""
    values = np.asarray(value, dtype=float)
    if not np.all(np.isfinite(values)):
        raise InvalidPropagationInputError(f"{name} must be finite")
    if np.any(values <= 0.0):
        raise InvalidPropagationInputError(f"{name} must be positive")


def dbm_to_power(dbm: ArrayLike) -> ArrayLike:
    """
    Convert a power expressed in dBm into mW.

    Args:
        dbm: Power in dBm.

    Returns:
        Power in mW, 10^(dBm/10).

    Example:
        >>> dbm_to_power(0.0)
        1.0
        >>> dbm_to_power(-30.0)
        0.001
    """
    if np.ndim(dbm):
        return 10.0 ** (np.asarray(dbm, dtype=float) / 10.0)
    return 10.0 ** (float(dbm) / 10.0)


def power_to_dbm(power_mw: ArrayLike) -> ArrayLike:
    """
    Convert a power expressed in mW into dBm.

    Args:
        power_mw: Power in mW. Must be positive.

    Returns:
        Power in dBm, 10*log10(mW).

    Raises:
        InvalidPropagationInputError: If power is not positive.
    """
    _check_positive("power", power_mw)
    if np.ndim(power_mw):
        return 10.0 * np.log10(np.asarray(power_mw, dtype=float))
    return 10.0 * float(np.log10(power_mw))


def path_loss_constant(frequency: float) -> float:
    """
    Constant part of the isotropic propagation model, k = c / (4*pi*f).

    Args:
        frequency: Carrier frequency in Hz.

    Returns:
        k in meters, so that Pr = Pte * k^n / d^n.
    """
    _check_positive("frequency", frequency)
    return SPEED_OF_LIGHT / (4.0 * np.pi * frequency)


def received_power(
    transmitted_power: ArrayLike,
    distance: ArrayLike,
    frequency: float,
    path_loss_exponent: float = DEFAULT_PATH_LOSS_EXPONENT,
) -> ArrayLike:
    """
    Expected received power (linear) for an isotropic radio source.

    Implements:
        Pr = Pte * (c / (4*pi*f))^n / d^n

    Args:
        transmitted_power: Equivalent transmitted power Pte in mW.
        distance: Distance(s) between radio source and receiver in meters.
        frequency: Carrier frequency in Hz.
        path_loss_exponent: Path-loss exponent n. Defaults to 2.0.

    Returns:
        Received power in mW, same shape as distance.

    Raises:
        InvalidPropagationInputError: If distance, frequency or transmitted
            power are not positive.

    Example:
        >>> # 1 mW transmitted at 2.4 GHz, received 10 m away
        >>> pr = received_power(1.0, 10.0, 2.4e9)
        >>> print(f"{power_to_dbm(pr):.2f} dBm")
        -60.05 dBm
    """
    _check_positive("transmitted power", transmitted_power)
    _check_positive("distance", distance)
    k = path_loss_constant(frequency)
    return transmitted_power * k ** path_loss_exponent / np.asarray(distance) ** path_loss_exponent


def received_power_dbm(
    transmitted_power_dbm: ArrayLike,
    distance: ArrayLike,
    frequency: float,
    path_loss_exponent: float = DEFAULT_PATH_LOSS_EXPONENT,
) -> ArrayLike:
    """
    Expected received power (dBm) for an isotropic radio source.

    Implements the logarithmic form of the propagation model:
        Pr = Pte + 10*n*log10(c / (4*pi*f)) - 10*n*log10(d)

    Args:
        transmitted_power_dbm: Equivalent transmitted power in dBm.
        distance: Distance(s) between radio source and receiver in meters.
        frequency: Carrier frequency in Hz.
        path_loss_exponent: Path-loss exponent n. Defaults to 2.0.

    Returns:
        Received power in dBm, same shape as distance.

    Raises:
        InvalidPropagationInputError: If distance or frequency are not
            positive.
    """
    _check_positive("distance", distance)
    k_db = 10.0 * np.log10(path_loss_constant(frequency))
    return (
        transmitted_power_dbm
        + path_loss_exponent * k_db
        - 10.0 * path_loss_exponent * np.log10(distance)
    )


def received_power_dbm_jacobian(
    source_position: np.ndarray,
    receiver_positions: np.ndarray,
    frequency: float,
    path_loss_exponent: float = DEFAULT_PATH_LOSS_EXPONENT,
) -> np.ndarray:
    """
    Partial derivatives of the received power (dBm) for every receiver.

    Writing the model in terms of squared distances:
        Pr = Pte + n*kdB - 5*n*log10(d^2)

    the derivatives are:
        dPr/dx_j = -10*n*(x_j - xr_j) / (ln(10) * d^2)
        dPr/dPte = 1
        dPr/dn = kdB - 5*log10(d^2)

    Args:
        source_position: Radio source position (D,).
        receiver_positions: Receiver positions (m, D).
        frequency: Carrier frequency in Hz.
        path_loss_exponent: Path-loss exponent n.

    Returns:
        Jacobian (m, D + 2) with columns [position (D), power, path-loss].

    Raises:
        InvalidPropagationInputError: If the source lies on a receiver.
    """
    source_position = np.asarray(source_position, dtype=float)
    receiver_positions = np.atleast_2d(np.asarray(receiver_positions, dtype=float))

    diff = source_position - receiver_positions
    sqr_distances = np.sum(diff ** 2, axis=1)
    _check_positive("distance", sqr_distances)

    k_db = 10.0 * np.log10(path_loss_constant(frequency))

    m, dims = receiver_positions.shape
    J = np.empty((m, dims + 2))
    J[:, :dims] = -10.0 * path_loss_exponent * diff / (np.log(10.0) * sqr_distances[:, None])
    J[:, dims] = 1.0
    J[:, dims + 1] = k_db - 5.0 * np.log10(sqr_distances)
    return J


def distance_from_rssi(
    rssi_dbm: ArrayLike,
    transmitted_power_dbm: float,
    frequency: float,
    path_loss_exponent: float = DEFAULT_PATH_LOSS_EXPONENT,
) -> ArrayLike:
    """
    Invert the propagation model to obtain distances from received power.

    Implements:
        d = k * 10^((Pte - Pr) / (10*n))

    Args:
        rssi_dbm: Received power(s) in dBm.
        transmitted_power_dbm: Equivalent transmitted power in dBm.
        frequency: Carrier frequency in Hz.
        path_loss_exponent: Path-loss exponent n. Must be positive.

    Returns:
        Distance(s) in meters.
    """
    _check_positive("path loss exponent", path_loss_exponent)
    k = path_loss_constant(frequency)
    exponent = (transmitted_power_dbm - np.asarray(rssi_dbm, dtype=float)) / (
        10.0 * path_loss_exponent
    )
    return k * 10.0 ** exponent


def simulate_rssi_readings(
    source_position: np.ndarray,
    receiver_positions: np.ndarray,
    transmitted_power_dbm: float,
    frequency: float,
    path_loss_exponent: float = DEFAULT_PATH_LOSS_EXPONENT,
    noise_std_db: float = 0.0,
    outlier_ratio: float = 0.0,
    outlier_std_db: float = 10.0,
    rng: Optional[np.random.Generator] = None,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Simulate RSSI readings of a radio source with noise and outliers.

    Each reading follows:
        rssi_i = Pr(d_i) + w_i,   w_i ~ N(0, noise_std_db^2)     (inlier)
        rssi_i = Pr(d_i) + e_i,   e_i ~ N(0, outlier_std_db^2)   (outlier)

    where a reading is an outlier with probability outlier_ratio.

    Args:
        source_position: True radio source position (D,).
        receiver_positions: Receiver positions (m, D).
        transmitted_power_dbm: True transmitted power in dBm.
        frequency: Carrier frequency in Hz.
        path_loss_exponent: True path-loss exponent.
        noise_std_db: Inlier noise std in dB. Defaults to 0 (noiseless).
        outlier_ratio: Probability of a reading being an outlier in [0, 1].
        outlier_std_db: Outlier error std in dB. Defaults to 10 dB.
        rng: Random generator. A fresh default generator is used if None.

    Returns:
        rssi: Simulated RSSI readings in dBm (m,).
        is_outlier: Boolean mask of readings contaminated as outliers (m,).

    Example:
        >>> rng = np.random.default_rng(42)
        >>> receivers = rng.uniform(-50, 50, size=(100, 3))
        >>> rssi, is_outlier = simulate_rssi_readings(
        ...     np.zeros(3), receivers, -60.0, 2.4e9,
        ...     noise_std_db=0.5, outlier_ratio=0.2, rng=rng,
        ... )
    """
    if not 0.0 <= outlier_ratio <= 1.0:
        raise ValueError(f"outlier_ratio must be in [0, 1], got {outlier_ratio}")
    if noise_std_db < 0.0 or outlier_std_db < 0.0:
        raise ValueError("Noise standard deviations must be non-negative")

    if rng is None:
        rng = np.random.default_rng()

    source_position = np.asarray(source_position, dtype=float)
    receiver_positions = np.atleast_2d(np.asarray(receiver_positions, dtype=float))
    m = receiver_positions.shape[0]

    distances = np.linalg.norm(receiver_positions - source_position, axis=1)
    rssi = received_power_dbm(
        transmitted_power_dbm, distances, frequency, path_loss_exponent
    )

    is_outlier = rng.uniform(size=m) < outlier_ratio
    errors = np.where(
        is_outlier,
        rng.normal(0.0, outlier_std_db, size=m),
        rng.normal(0.0, noise_std_db, size=m) if noise_std_db > 0 else 0.0,
    )

    return rssi + errors, is_outlier
