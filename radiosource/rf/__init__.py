"""
RF (Radio Frequency) module.

This module implements the RSS propagation model and the data types used
to estimate radio sources from located RSSI readings.

Submodules:
    measurement_models: Propagation model, unit conversions, simulation
    types: Radio source, RSSI reading and estimated radio source types
"""

from radiosource.rf.measurement_models import (
    DEFAULT_PATH_LOSS_EXPONENT,
    SPEED_OF_LIGHT,
    dbm_to_power,
    distance_from_rssi,
    path_loss_constant,
    power_to_dbm,
    received_power,
    received_power_dbm,
    received_power_dbm_jacobian,
    simulate_rssi_readings,
)
from radiosource.rf.types import EstimatedRadioSource, RadioSource, RssiReading

__all__ = [
    # Constants
    "SPEED_OF_LIGHT",
    "DEFAULT_PATH_LOSS_EXPONENT",
    # Unit conversions
    "dbm_to_power",
    "power_to_dbm",
    # Propagation model
    "path_loss_constant",
    "received_power",
    "received_power_dbm",
    "received_power_dbm_jacobian",
    "distance_from_rssi",
    "simulate_rssi_readings",
    # Types
    "RadioSource",
    "RssiReading",
    "EstimatedRadioSource",
]
