"""Residual diagnostics for fitted seasonal ARIMA models.

Diagnostics are advisory: they describe how well a selected model's
residuals resemble white noise, they never change which model is selected.

Features:
- Sample ACF with the +/-1.96/sqrt(n) significance band
- Ljung-Box test for serial correlation (degrees of freedom adjusted for ARMA terms)
- Jarque-Bera test for normality
- Normal quantile (Q-Q) comparison
- ARCH-LM test for heteroskedasticity
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

import numpy as np
import pandas as pd
from scipy import stats
from statsmodels.stats.diagnostic import acorr_ljungbox, het_arch
from statsmodels.stats.stattools import jarque_bera
from statsmodels.tsa.stattools import acf

from forecast_engine_src.config_utils import EngineConfig
from forecast_engine_src.entities import FittedModel
from forecast_engine_src.exceptions import InputValidationError

logger = logging.getLogger(__name__)

ACF_BAND_Z = 1.96


class DiagnosticTest(Enum):
    """Types of residual diagnostic tests."""
    LJUNG_BOX = "ljung_box"
    JARQUE_BERA = "jarque_bera"
    ARCH_LM = "arch_lm"


@dataclass
class DiagnosticResult:
    """Results from a single diagnostic test."""

    test_name: str
    test_type: DiagnosticTest
    test_statistic: float
    p_value: float
    significance_level: float = 0.05
    degrees_of_freedom: Optional[int] = None

    # Additional test-specific information
    test_description: Optional[str] = None
    additional_stats: Dict[str, float] = field(default_factory=dict)

    @property
    def is_significant(self) -> bool:
        """Check if test rejects null hypothesis."""
        return self.p_value < self.significance_level

    @property
    def interpretation(self) -> str:
        """Get interpretation of test result."""
        if self.test_type == DiagnosticTest.LJUNG_BOX:
            if self.is_significant:
                return "Serial correlation detected in residuals"
            return "No significant serial correlation in residuals"
        if self.test_type == DiagnosticTest.JARQUE_BERA:
            if self.is_significant:
                return "Residuals not normally distributed"
            return "Residuals appear normally distributed"
        if self.is_significant:
            return "ARCH effects detected in residuals"
        return "No ARCH effects detected in residuals"


@dataclass
class AcfFlags:
    """Sample autocorrelations and the lags outside the white-noise band."""

    acf: np.ndarray
    band: float
    flagged_lags: List[int]

    @property
    def any_flagged(self) -> bool:
        return bool(self.flagged_lags)


@dataclass
class QuantileCheck:
    """Empirical versus theoretical normal quantiles of standardized residuals."""

    correlation: float
    max_deviation: float
    theoretical: np.ndarray = field(repr=False)
    empirical: np.ndarray = field(repr=False)


@dataclass
class DiagnosticReport:
    """Structured, informational summary of a model's residuals."""

    model_label: str
    n_residuals: int
    burn_in: int
    acf: AcfFlags
    ljung_box: DiagnosticResult
    jarque_bera: DiagnosticResult
    quantiles: QuantileCheck
    arch_lm: Optional[DiagnosticResult] = None
    summary_statistics: Dict[str, float] = field(default_factory=dict)
    issues: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def overall_adequate(self) -> bool:
        return not self.issues

    def to_dict(self) -> Dict[str, Any]:
        return {
            "model": self.model_label,
            "n_residuals": self.n_residuals,
            "burn_in": self.burn_in,
            "acf_flagged_lags": list(self.acf.flagged_lags),
            "ljung_box_stat": self.ljung_box.test_statistic,
            "ljung_box_pvalue": self.ljung_box.p_value,
            "jarque_bera_stat": self.jarque_bera.test_statistic,
            "jarque_bera_pvalue": self.jarque_bera.p_value,
            "qq_correlation": self.quantiles.correlation,
            "arch_lm_pvalue": self.arch_lm.p_value if self.arch_lm else None,
            "overall_adequate": self.overall_adequate,
            "issues": list(self.issues),
            "warnings": list(self.warnings),
        }


def _clean(residuals: Union[pd.Series, np.ndarray]) -> np.ndarray:
    arr = np.asarray(residuals, dtype=float).ravel()
    return arr[np.isfinite(arr)]


class ResidualDiagnostics:
    """Residual diagnostic testing.

    Parameters
    ----------
    significance_level : float, default 0.05
        Significance level for all tests
    ljung_box_lags : int, default 10
        Lag at which the Ljung-Box statistic is reported
    ljung_box_model_df : int, optional
        Degrees of freedom consumed by the model; ``p+q+P+Q`` of the
        diagnosed model when None
    acf_lags : int, default 24
        Number of autocorrelation lags inspected
    arch_lm_lags : int, default 4
        Lags of the ARCH-LM regression
    """

    def __init__(self,
                 significance_level: float = 0.05,
                 ljung_box_lags: int = 10,
                 ljung_box_model_df: Optional[int] = None,
                 acf_lags: int = 24,
                 arch_lm_lags: int = 4):
        if not 0.0 < significance_level < 1.0:
            raise InputValidationError(f"significance_level must be in (0, 1), got {significance_level}")
        self.significance_level = significance_level
        self.ljung_box_lags = ljung_box_lags
        self.ljung_box_model_df = ljung_box_model_df
        self.acf_lags = acf_lags
        self.arch_lm_lags = arch_lm_lags

    @classmethod
    def from_config(cls, config: EngineConfig) -> "ResidualDiagnostics":
        return cls(significance_level=config.diagnostics_alpha,
                   ljung_box_lags=config.ljung_box_lags,
                   ljung_box_model_df=config.ljung_box_model_df,
                   acf_lags=config.acf_lags)

    def acf_flags(self, residuals: Union[pd.Series, np.ndarray], lags: Optional[int] = None) -> AcfFlags:
        """Sample ACF at lags 1..lags and the lags whose value lies outside +/-1.96/sqrt(n)."""
        resid = _clean(residuals)
        n = resid.size
        nlags = min(lags or self.acf_lags, n - 1)
        if nlags < 1:
            raise InputValidationError(f"Too few residuals ({n}) for an autocorrelation check")
        values = acf(resid, nlags=nlags, fft=True)
        band = ACF_BAND_Z / np.sqrt(n)
        flagged = [lag for lag in range(1, nlags + 1) if abs(values[lag]) > band]
        return AcfFlags(acf=np.asarray(values[1:], dtype=float), band=float(band), flagged_lags=flagged)

    def ljung_box_test(self, residuals: Union[pd.Series, np.ndarray], lags: Optional[int] = None,
                       model_df: int = 0) -> DiagnosticResult:
        """Ljung-Box test for serial correlation in residuals.

        Parameters
        ----------
        residuals : array-like
            Model residuals
        lags : int, optional
            Number of lags to test (default from constructor)
        model_df : int, default 0
            Number of estimated ARMA parameters, subtracted from the
            chi-squared degrees of freedom

        Returns
        -------
        DiagnosticResult
            Ljung-Box test results
        """
        resid = _clean(residuals)
        lags = min(lags or self.ljung_box_lags, resid.size - 1)
        if lags <= model_df:
            # keep at least one degree of freedom
            lags = model_df + 1
        if lags >= resid.size:
            raise InputValidationError(
                f"Too few residuals ({resid.size}) for a Ljung-Box test with model_df={model_df}"
            )
        logger.debug("Running Ljung-Box test with %d lags (model_df=%d)", lags, model_df)

        lb_result = acorr_ljungbox(resid, lags=[lags], model_df=model_df, return_df=True)
        return DiagnosticResult(
            test_name="Ljung-Box Test",
            test_type=DiagnosticTest.LJUNG_BOX,
            test_statistic=float(lb_result["lb_stat"].iloc[-1]),
            p_value=float(lb_result["lb_pvalue"].iloc[-1]),
            degrees_of_freedom=lags - model_df,
            significance_level=self.significance_level,
            test_description=f"Test for serial correlation in residuals (H0: No serial correlation, lags={lags})",
        )

    def jarque_bera_test(self, residuals: Union[pd.Series, np.ndarray]) -> DiagnosticResult:
        """Jarque-Bera test for normality of residuals."""
        logger.debug("Running Jarque-Bera normality test")
        jb_stat, jb_pval, skew, kurtosis = jarque_bera(_clean(residuals))
        return DiagnosticResult(
            test_name="Jarque-Bera Test",
            test_type=DiagnosticTest.JARQUE_BERA,
            test_statistic=float(jb_stat),
            p_value=float(jb_pval),
            degrees_of_freedom=2,
            significance_level=self.significance_level,
            test_description="Test for normality of residuals (H0: Residuals are normally distributed)",
            additional_stats={"skewness": float(skew), "kurtosis": float(kurtosis)},
        )

    def arch_lm_test(self, residuals: Union[pd.Series, np.ndarray], lags: Optional[int] = None) -> DiagnosticResult:
        """ARCH-LM test for heteroskedasticity in residuals."""
        lags = lags or self.arch_lm_lags
        logger.debug("Running ARCH-LM test with %d lags", lags)
        lm_stat, lm_pval, _, _ = het_arch(_clean(residuals), nlags=lags)
        return DiagnosticResult(
            test_name="ARCH-LM Test",
            test_type=DiagnosticTest.ARCH_LM,
            test_statistic=float(lm_stat),
            p_value=float(lm_pval),
            degrees_of_freedom=lags,
            significance_level=self.significance_level,
            test_description=f"Test for ARCH effects in residuals (H0: No ARCH effects, lags={lags})",
        )

    def normal_quantile_check(self, residuals: Union[pd.Series, np.ndarray]) -> QuantileCheck:
        """Compare standardized residual quantiles with standard normal quantiles."""
        resid = _clean(residuals)
        sd = resid.std(ddof=1) if resid.size > 1 else 0.0
        if resid.size < 3 or sd == 0.0:
            raise InputValidationError("Quantile check needs at least three non-constant residuals")
        z = (resid - resid.mean()) / sd
        (theoretical, empirical), (_, _, r) = stats.probplot(z, dist="norm")
        return QuantileCheck(
            correlation=float(r),
            max_deviation=float(np.max(np.abs(empirical - theoretical))),
            theoretical=np.asarray(theoretical, dtype=float),
            empirical=np.asarray(empirical, dtype=float),
        )

    def diagnose(self, model: FittedModel) -> DiagnosticReport:
        """
        Run every residual check on a fitted model.

        The first ``d + D*s`` residuals are excluded: they absorb the
        initialization of the differenced state and are not innovations.
        """
        order = model.order
        burn_in = order.d + order.D * order.s
        resid = _clean(model.residuals[burn_in:])
        model_df = order.n_arma_params if self.ljung_box_model_df is None else self.ljung_box_model_df
        logger.info("Running residual diagnostics for %s (%d residuals, burn-in %d)",
                    model.label, resid.size, burn_in)

        acf_result = self.acf_flags(resid)
        lb = self.ljung_box_test(resid, model_df=model_df)
        jb = self.jarque_bera_test(resid)
        qq = self.normal_quantile_check(resid)
        arch = self.arch_lm_test(resid) if resid.size > 2 * self.arch_lm_lags + 1 else None

        issues: List[str] = []
        warnings: List[str] = []
        if lb.is_significant:
            issues.append(f"Serial correlation in residuals (Ljung-Box p={lb.p_value:.4f}); "
                          "consider increasing AR or MA order")
        if acf_result.any_flagged:
            warnings.append(f"Residual ACF outside the +/-{acf_result.band:.3f} band at lags {acf_result.flagged_lags}")
        if jb.is_significant:
            warnings.append(f"Residuals not normally distributed (Jarque-Bera p={jb.p_value:.4f}); "
                            "prediction intervals may be miscalibrated")
        if arch is not None and arch.is_significant:
            warnings.append(f"Heteroskedasticity (ARCH-LM p={arch.p_value:.4f})")

        report = DiagnosticReport(
            model_label=model.label,
            n_residuals=int(resid.size),
            burn_in=burn_in,
            acf=acf_result,
            ljung_box=lb,
            jarque_bera=jb,
            quantiles=qq,
            arch_lm=arch,
            summary_statistics={
                "mean": float(resid.mean()),
                "std": float(resid.std(ddof=1)),
                "skewness": jb.additional_stats["skewness"],
                "kurtosis": jb.additional_stats["kurtosis"],
                "min": float(resid.min()),
                "max": float(resid.max()),
            },
            issues=issues,
            warnings=warnings,
        )
        for text in issues + warnings:
            logger.info("%s: %s", model.label, text)
        return report


def run_comprehensive_diagnostics(model: FittedModel,
                                  significance_level: float = 0.05,
                                  ljung_box_lags: int = 10,
                                  acf_lags: int = 24) -> DiagnosticReport:
    """Convenience function for comprehensive residual diagnostics.

    Parameters
    ----------
    model : FittedModel
        Fitted model whose residuals are checked
    significance_level : float
        Significance level for tests
    ljung_box_lags : int
        Ljung-Box lag
    acf_lags : int
        Number of ACF lags inspected

    Returns
    -------
    DiagnosticReport
    """
    diagnostics = ResidualDiagnostics(significance_level, ljung_box_lags=ljung_box_lags, acf_lags=acf_lags)
    return diagnostics.diagnose(model)
