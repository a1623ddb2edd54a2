"""Robust estimation of radio sources from located RSSI readings.

This package contains the components used to locate a radio emitter
(Wi-Fi access point, BLE beacon) and characterize its transmission:
- rf: Propagation model, unit conversions and reading types
- estimators: Nonlinear LS, LMedS search and radio source estimators
- config: Estimator configuration and loading
"""

__version__ = "0.1.0"
