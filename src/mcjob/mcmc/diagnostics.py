"""
Run Diagnostics.

Summaries of the per-step statistics recorded in a Chain:
- summarize_diagnostics: mean of each recorded diagnostic
- log_run_summary: log the mean of each diagnostic after a run
- log_acceptance_summary: compare acceptance rates across several chains
"""

from typing import Dict, List

import numpy as np

import logging
logger = logging.getLogger('mcjob')

# Acceptance rates below this are flagged after a run
LOW_ACCEPTANCE_RATE = 0.10


def summarize_diagnostics(chain) -> Dict[str, float]:
    """
    Mean of each diagnostic over the saved states.

    Non-finite entries (diagnostics a sampler did not record) are ignored.
    """
    summary = {}
    for name, values in chain.diagnostics.items():
        values = np.asarray(values, dtype=float)
        finite = values[np.isfinite(values)]
        summary[name] = float(np.mean(finite)) if finite.size else float('nan')
    return summary


def log_run_summary(chain) -> None:
    summary = summarize_diagnostics(chain)
    if not summary:
        return
    parts = [f"{name}={value:.3g}" for name, value in summary.items()]
    logger.debug(f"Diagnostics over {chain.nsamples} saved states: {', '.join(parts)}")


def log_acceptance_summary(chains: List, labels: List[str] = None) -> np.ndarray:
    """
    Log acceptance rate statistics for several chains.

    Args:
        chains: Chains returned by jobs
        labels: Optional label per chain (default "Chain i")

    Returns:
        Array of acceptance rates (nan where a chain did not record 'accept')
    """
    labels = labels or [f"Chain {i}" for i in range(len(chains))]
    rates = np.array([np.nan if c.acceptance_rate is None else c.acceptance_rate for c in chains])
    finite = rates[np.isfinite(rates)]
    if finite.size == 0:
        return rates

    logger.info(f"--- Acceptance Rates ({finite.size} chains) ---")
    logger.info(f"  Mean: {np.mean(finite):.1%}  Median: {np.median(finite):.1%}  "
                f"Min: {np.min(finite):.1%}  Max: {np.max(finite):.1%}")

    low_mask = rates < LOW_ACCEPTANCE_RATE
    if np.any(low_mask):
        low_labels = [lbl for lbl, is_low in zip(labels, low_mask) if is_low]
        logger.warning(f"  {len(low_labels)} chain(s) have acceptance rate < {LOW_ACCEPTANCE_RATE:.0%}")
        if len(low_labels) <= 10:
            logger.warning(f"    Low chains: {', '.join(low_labels)}")
    return rates
