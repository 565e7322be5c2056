"""
Regression-based lateralization estimate.

The corrected flow value of every heartbeat and side is modelled with
B-spline smooths of absolute time and of time within the epoch (the latter
also varying by epoch), plus linear terms for the period of interest, the
side and their interaction. The interaction coefficient is the
model-based lateralization estimate.
"""

import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

import numpy as np
import pandas as pd
import statsmodels.formula.api as smf
from patsy import PatsyError

from ftcd_laterality.data_extraction.constants import SIDE_CODES
from ftcd_laterality.pipeline.config import PipelineConfig
from ftcd_laterality.pipeline.errors import (InsufficientHeartbeatsError,
                                             ModelFitError)

logger = logging.getLogger(__name__)

INTERACTION = "poi:side_code"


@dataclass(frozen=True)
class ModelResult:
    intercept: float
    poi: float
    side: float
    lateralization: float
    lateralization_se: float
    p_value: float
    r_squared: float
    aic: float
    bic: float
    n_obs: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def build_formula(time_df: int, rel_time_df: int) -> str:
    rel = f"bs(rel_time, df={rel_time_df})"
    return (
        f"value ~ bs(time, df={time_df}) + {rel} + {rel}:C(epoch)"
        f" + poi + side_code + {INTERACTION}"
    )


def prepare_model_data(long_df: pd.DataFrame) -> pd.DataFrame:
    """Drop missing values and code side as -1 (left) / +1 (right)."""
    data = long_df.dropna(subset=["value", "time", "rel_time", "epoch"]).copy()
    data["side_code"] = data["side"].map(SIDE_CODES)
    data["epoch"] = data["epoch"].astype(int)
    data["poi"] = data["poi"].astype(int)
    return data.reset_index(drop=True)


def fit_laterality_model(
    long_df: pd.DataFrame, config: Optional[PipelineConfig] = None
) -> ModelResult:
    """
    Fit the lateralization regression and extract the reported quantities.

    The sign of the interaction coefficient is inverted before it is
    reported, so positive values mean left-lateralized.

    The smooth terms may alias one another (epochs that tile the time axis
    make ``bs(time)`` a combination of the per-epoch ``bs(rel_time)``
    columns). The least-squares solution is then taken through the
    pseudo-inverse; only the interaction column has to be estimable.

    Parameters
    ----------
    long_df : pd.DataFrame
        Long-form heartbeat table with ``time, rel_time, epoch, poi, side,
        value``.
    config : PipelineConfig, optional
        Supplies the spline degrees of freedom.

    Returns
    -------
    ModelResult

    Raises
    ------
    InsufficientHeartbeatsError
        If no complete rows remain, only one side or epoch is left, or there
        are not more observations than design columns.
    ModelFitError
        If the interaction is not estimable or the fit fails.
    """
    config = config or PipelineConfig()
    data = prepare_model_data(long_df)
    if data.empty:
        raise InsufficientHeartbeatsError("No heartbeat has a complete value to model")
    if data["side"].nunique() < 2 or data["epoch"].nunique() < 2:
        raise InsufficientHeartbeatsError(
            f"Heartbeats cover {data['side'].nunique()} side(s) and "
            f"{data['epoch'].nunique()} epoch(s); two of each are needed"
        )
    formula = build_formula(config.time_spline_df, config.rel_time_spline_df)

    try:
        model = smf.ols(formula, data=data)
    except (PatsyError, ValueError, np.linalg.LinAlgError) as e:
        raise ModelFitError(f"Could not build the design matrix: {e}") from e

    n_obs, n_params = model.exog.shape
    if n_obs <= n_params:
        raise InsufficientHeartbeatsError(
            f"{n_obs // 2} heartbeats give {n_obs} observations for "
            f"{n_params} model terms"
        )
    rank = np.linalg.matrix_rank(model.exog)
    column = model.exog_names.index(INTERACTION)
    if np.linalg.matrix_rank(np.delete(model.exog, column, axis=1)) == rank:
        raise ModelFitError(
            f"{INTERACTION} is not estimable: the design loses no rank without it"
        )
    if rank < n_params:
        logger.debug("Smooth terms alias: design rank %d of %d columns", rank, n_params)

    try:
        result = model.fit(method="pinv")
    except (ValueError, np.linalg.LinAlgError) as e:
        raise ModelFitError(f"Regression failed: {e}") from e

    se = result.bse[INTERACTION]
    if not np.isfinite(se):
        raise ModelFitError("Interaction standard error is not finite")

    fitted = ModelResult(
        intercept=float(result.params["Intercept"]),
        poi=float(result.params["poi"]),
        side=float(result.params["side_code"]),
        lateralization=-float(result.params[INTERACTION]),
        lateralization_se=float(se),
        p_value=float(result.pvalues[INTERACTION]),
        r_squared=float(result.rsquared),
        aic=float(result.aic),
        bic=float(result.bic),
        n_obs=int(result.nobs),
    )
    logger.info(
        "Model fitted on %d observations: LI %.3f (SE %.3f), R2 %.3f",
        fitted.n_obs, fitted.lateralization, fitted.lateralization_se,
        fitted.r_squared,
    )
    return fitted
