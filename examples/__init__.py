"""
Radio Source Estimation Examples.

Example scripts demonstrating robust estimation of radio sources from
located RSSI readings.

Examples:
    - LMedS robust estimation vs. nonlinear least squares under outliers
"""
