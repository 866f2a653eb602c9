"""
LMS (Box-Cox) transform used by the WHO Child Growth Standards.

  If L != 0: Z = ((value/M)^L - 1) / (L*S)
  If L == 0: Z = ln(value/M) / S

Beyond +/-3 SD the LMS curves are known to distort the tails, so WHO restates
z-scores for weight-based indicators linearly, using the distance between the
2 SD and 3 SD reference values as the unit.
"""

from __future__ import annotations

from typing import NamedTuple

import numpy as np
from scipy import stats


class LMS(NamedTuple):
    L: float
    M: float
    S: float


def lms_zscore(value: float, L: float, M: float, S: float) -> float:
    if value <= 0 or M <= 0 or S <= 0:
        raise ValueError(f"LMS transform needs positive value, M and S (value={value}, M={M}, S={S})")
    if np.isclose(L, 0.0):
        return float(np.log(value / M) / S)
    return float(((value / M) ** L - 1.0) / (L * S))


def lms_value(z: float, L: float, M: float, S: float) -> float:
    """Measurement value lying at z standard deviations (inverse of lms_zscore)."""
    if np.isclose(L, 0.0):
        return float(M * np.exp(z * S))
    return float(M * (1.0 + L * S * z) ** (1.0 / L))


def restate_extreme(z: float, value: float, L: float, M: float, S: float) -> float:
    """
    WHO 2006 restatement of z-scores beyond +/-3 SD.

      z > 3:  3 + (value - SD3pos) / (SD3pos - SD2pos)
      z < -3: -3 + (value - SD3neg) / (SD2neg - SD3neg)

    Scores within [-3, 3] are returned unchanged.
    """
    if z > 3.0:
        sd3 = lms_value(3.0, L, M, S)
        sd2 = lms_value(2.0, L, M, S)
        return 3.0 + (value - sd3) / (sd3 - sd2)
    if z < -3.0:
        sd3 = lms_value(-3.0, L, M, S)
        sd2 = lms_value(-2.0, L, M, S)
        return -3.0 + (value - sd3) / (sd2 - sd3)
    return z


def score(value: float, lms: LMS, restate: bool = False) -> float:
    z = lms_zscore(value, lms.L, lms.M, lms.S)
    if restate:
        z = restate_extreme(z, value, lms.L, lms.M, lms.S)
    return z


def zscore_to_percentile(z: float) -> float:
    """Convert a z-score to a percentile (0-100) via the standard normal CDF."""
    return float(stats.norm.cdf(z) * 100.0)
