"""
Ordination Configuration
========================
Numeric defaults for every ordination stage.
Single source of truth. All packages import this.

Usage:
    from ordination.config import get_setting
    alpha = get_setting('stepwise.alpha')

Overrides are read from YAML and returned as a merged copy; the module-level
CONFIG is never mutated.
"""

import copy
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml


CONFIG = {

    # =================================================================
    # Numerical tolerances
    # =================================================================
    'tolerance': {
        # Relative to the largest |eigenvalue|; smaller values count as zero
        'eigenvalue': 1e-10,
        # Relative to the column norm; smaller residuals mark a column redundant
        'rank': 1e-8,
        # Absolute tolerance for symmetry / zero-diagonal checks
        'symmetry': 1e-8,
        # Relative to a column's largest |value|; a smaller standard deviation
        # (or norm after centering) counts as zero
        'variance': 1e-12,
    },

    # =================================================================
    # Distance computation
    # =================================================================
    'distance': {
        'default_transform': 'none',
        'default_metric': 'euclidean',
    },

    # =================================================================
    # Unconstrained decomposition (PCA / PCoA)
    # =================================================================
    'decompose': {
        # None, 'lingoes' or 'cailliez'
        'pcoa_correction': None,
        # Negative eigenvalue magnitude (relative to the largest positive)
        # above which a warning is logged
        'negative_eigenvalue_warning': 0.01,
    },

    # =================================================================
    # Constrained ordination (RDA)
    # =================================================================
    'constrained': {
        'scale': False,
        'drop_collinear': False,
    },

    # =================================================================
    # Stepwise selection
    # =================================================================
    'stepwise': {
        'criterion': 'adj_r2',
        'direction': 'forward',
        'alpha': 0.05,
        'alpha_out': 0.10,
        'permutations': 999,
        'max_steps': 50,
        'use_ceiling': True,
        'tie_tolerance': 0.0,
        # 'order' = first candidate in full-model column order wins,
        # 'pvalue' = lowest permutation p-value among tied candidates wins
        'tie_break': 'order',
    },

    # =================================================================
    # Permutation engine
    # =================================================================
    'permutation': {
        'n_jobs': 1,
        # Permutations handed to one worker at a time
        'chunk_size': 100,
        # Count the observed statistic among the permutations: p = (k + 1) / (N + 1)
        'plus_one': False,
    },

    # =================================================================
    # Group-difference tests
    # =================================================================
    'inference': {
        'permanova_permutations': 999,
        'min_group_size': 2,
    },
}


def get_setting(path: str, default=None, config: Optional[Dict[str, Any]] = None):
    """
    Get a setting by dot-notation path.

    Example:
        get_setting('stepwise.alpha')          # Returns 0.05
        get_setting('tolerance.eigenvalue')    # Returns 1e-10
    """
    value = CONFIG if config is None else config
    for key in path.split('.'):
        if isinstance(value, dict) and key in value:
            value = value[key]
        else:
            return default
    return value


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(path: Union[str, Path]) -> Dict[str, Any]:
    """
    Load YAML overrides and merge them over the defaults.

    Parameters
    ----------
    path : str or Path
        YAML file with a (partial) nested mapping shaped like CONFIG.

    Returns
    -------
    dict — a new merged configuration. CONFIG itself is untouched.
    """
    with open(path, 'r') as f:
        overrides = yaml.safe_load(f) or {}
    if not isinstance(overrides, dict):
        raise ValueError(f"{path}: top level of a config file must be a mapping")
    return _deep_merge(CONFIG, overrides)


def validate_config(config: Optional[Dict[str, Any]] = None) -> List[str]:
    """Check config for internal consistency."""
    cfg = CONFIG if config is None else config
    errors = []

    step = cfg['stepwise']
    if not 0.0 < step['alpha'] < 1.0:
        errors.append("stepwise.alpha must be in (0, 1)")
    if step['alpha_out'] < step['alpha']:
        errors.append("stepwise.alpha_out should be >= stepwise.alpha")
    if step['permutations'] < 1:
        errors.append("stepwise.permutations must be positive")
    if step['criterion'] not in ('adj_r2', 'r2'):
        errors.append("stepwise.criterion must be 'adj_r2' or 'r2'")
    if step['direction'] not in ('forward', 'both'):
        errors.append("stepwise.direction must be 'forward' or 'both'")
    if step['tie_break'] not in ('order', 'pvalue'):
        errors.append("stepwise.tie_break must be 'order' or 'pvalue'")

    if cfg['decompose']['pcoa_correction'] not in (None, 'lingoes', 'cailliez'):
        errors.append("decompose.pcoa_correction must be null, 'lingoes' or 'cailliez'")

    if cfg['permutation']['chunk_size'] < 1:
        errors.append("permutation.chunk_size must be positive")

    return errors
