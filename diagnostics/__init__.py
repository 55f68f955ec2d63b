"""Residual diagnostics for fitted seasonal ARIMA models.

This package provides advisory checks of model residuals:
- Sample ACF band flags
- Ljung-Box serial correlation test with ARMA degrees-of-freedom adjustment
- Jarque-Bera normality test and normal quantile comparison
- ARCH-LM heteroskedasticity test
"""

from .residual_diagnostics import (
    AcfFlags,
    DiagnosticReport,
    DiagnosticResult,
    DiagnosticTest,
    QuantileCheck,
    ResidualDiagnostics,
    run_comprehensive_diagnostics
)

__all__ = [
    'AcfFlags',
    'DiagnosticReport',
    'DiagnosticResult',
    'DiagnosticTest',
    'QuantileCheck',
    'ResidualDiagnostics',
    'run_comprehensive_diagnostics'
]

# Version info
__version__ = '1.0.0'
