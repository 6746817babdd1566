"""
Dissimilarity matrix computation.

table → transform (row / column) → pairwise metric → DissimilarityMatrix.

Metrics delegate to scipy.spatial.distance.pdist. Jaccard is the binary
(presence / absence) form.
"""

import logging
from enum import Enum
from typing import Optional

import numpy as np
from scipy.spatial.distance import pdist, squareform

from ordination.config import get_setting
from ordination.errors import InvalidInputError
from ordination.table import DissimilarityMatrix, ObservationTable
from distance.transforms import Transform, transform_values

logger = logging.getLogger(__name__)


class Metric(str, Enum):
    EUCLIDEAN = 'euclidean'
    MANHATTAN = 'manhattan'
    BRAY = 'bray'
    JACCARD = 'jaccard'
    CANBERRA = 'canberra'
    CHEBYSHEV = 'chebyshev'

    @classmethod
    def parse(cls, name) -> "Metric":
        if isinstance(name, cls):
            return name
        key = str(name).strip().lower()
        aliases = {
            'cityblock': 'manhattan',
            'braycurtis': 'bray',
            'bray-curtis': 'bray',
            'bray_curtis': 'bray',
        }
        key = aliases.get(key, key)
        try:
            return cls(key)
        except ValueError:
            valid = [m.value for m in cls]
            raise InvalidInputError(f"unknown metric {name!r}; expected one of {valid}") from None


# Metric → scipy pdist name
_SCIPY_NAMES = {
    Metric.EUCLIDEAN: 'euclidean',
    Metric.MANHATTAN: 'cityblock',
    Metric.BRAY: 'braycurtis',
    Metric.JACCARD: 'jaccard',
    Metric.CANBERRA: 'canberra',
    Metric.CHEBYSHEV: 'chebyshev',
}

NON_NEGATIVE_METRICS = {Metric.BRAY, Metric.JACCARD}


def _pairwise(values: np.ndarray, metric: Metric) -> np.ndarray:
    if metric is Metric.JACCARD:
        presence = values > 0
        # Two empty rows are identical, not undefined
        with np.errstate(invalid='ignore', divide='ignore'):
            condensed = pdist(presence, metric='jaccard')
        return np.nan_to_num(condensed, nan=0.0)
    # canberra: scipy counts 0/0 terms as zero
    with np.errstate(invalid='ignore', divide='ignore'):
        return pdist(values, metric=_SCIPY_NAMES[metric])


def compute(
    table: ObservationTable,
    transform: Optional[str] = None,
    metric: Optional[str] = None,
) -> DissimilarityMatrix:
    """
    Compute a pairwise dissimilarity matrix between table rows.

    Parameters
    ----------
    table : ObservationTable
        (n_observations, n_variables) table.
    transform : str, optional
        Row / column transform applied first. Defaults to
        distance.default_transform ('none').
    metric : str, optional
        Pairwise metric. Defaults to distance.default_metric ('euclidean').

    Returns
    -------
    DissimilarityMatrix (n_observations × n_observations).

    Raises
    ------
    InvalidInputError
        Fewer than 2 rows, negative values where the transform or metric
        needs non-negative data, or distances that come out undefined.
    """
    t = Transform.parse(transform if transform is not None else get_setting('distance.default_transform'))
    m = Metric.parse(metric if metric is not None else get_setting('distance.default_metric'))

    if table.n_rows < 2:
        raise InvalidInputError(f"need at least 2 observations, got {table.n_rows}")

    values = transform_values(table, t)

    if m in NON_NEGATIVE_METRICS and np.any(values < 0):
        raise InvalidInputError(f"{m.value} distance requires non-negative values")

    condensed = _pairwise(values, m)
    if not np.all(np.isfinite(condensed)):
        raise InvalidInputError(
            f"{m.value} distance undefined for some row pairs (e.g. two all-zero rows)"
        )

    logger.debug("distance %s/%s on %d observations", t.value, m.value, table.n_rows)

    return DissimilarityMatrix(
        values=squareform(condensed),
        ids=table.row_ids,
        transform=t.value,
        metric=m.value,
    )
