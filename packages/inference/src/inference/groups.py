"""Grouping-vector validation shared by the group-difference tests."""

from typing import List, Sequence, Tuple

import numpy as np

from ordination.config import get_setting
from ordination.errors import InvalidInputError


def encode_groups(groups: Sequence, n: int, min_groups: int = 2) -> Tuple[np.ndarray, List[str]]:
    """
    Integer codes for a grouping vector.

    Returns
    -------
    codes : (n,) int array into ``levels``
    levels : sorted group labels (as strings)
    """
    labels = [str(g) for g in groups]
    if len(labels) != n:
        raise InvalidInputError(f"groups has {len(labels)} entries, expected {n}")
    levels = sorted(set(labels))
    if len(levels) < min_groups:
        raise InvalidInputError(f"need at least {min_groups} groups, got {len(levels)}")
    index = {g: i for i, g in enumerate(levels)}
    codes = np.array([index[g] for g in labels], dtype=int)

    min_size = get_setting('inference.min_group_size')
    sizes = np.bincount(codes, minlength=len(levels))
    small = [levels[i] for i in np.where(sizes < min_size)[0]]
    if small:
        raise InvalidInputError(f"groups with fewer than {min_size} members: {small}")
    return codes, levels
