"""
Sampler, tuner and output settings.

This module defines the closed set of tags used to dispatch between sampler
families and output destinations, plus the defaults used when a job is built
from a dict config.

To add a new sampler:
1. Add it to the SamplerType enum
2. Create a module in samplers/ with initialize, create_working_state, step, reset
3. Add it to SAMPLER_REGISTRY in samplers/dispatch.py
4. Add its config name to SAMPLER_NAMES and its target rate to DEFAULT_TARGET_RATES
"""

from enum import Enum, IntEnum


class SamplerType(IntEnum):
    """
    Enumeration of available sampler families.

    IntEnum values are stable tags; they are stored in checkpoints.
    """
    RWM = 0      # Random-walk Metropolis
    IMH = 1      # Independent Metropolis-Hastings
    MALA = 2     # Metropolis-adjusted Langevin algorithm
    HMC = 3      # Hamiltonian Monte Carlo
    NUTS = 4     # No-U-Turn sampler (trajectory doubling)
    SMMALA = 5   # Simplified manifold MALA (metric-adjusted Langevin)
    RMHMC = 6    # Riemannian manifold HMC
    SLICE = 7    # Slice sampler
    RAM = 8      # Robust adaptive Metropolis (learned proposal shape)

    def __str__(self):
        return self.name


class OutputDestination(str, Enum):
    """Where a job persists the states selected by its range."""
    NSTATE = 'nstate'      # Preallocated in-memory buffer
    IOSTREAM = 'iostream'  # One CSV record per saved state, appended to a file

    def __str__(self):
        return self.value


# Config-file names for each sampler family
SAMPLER_NAMES = {
    'rwm': SamplerType.RWM,
    'imh': SamplerType.IMH,
    'mala': SamplerType.MALA,
    'hmc': SamplerType.HMC,
    'nuts': SamplerType.NUTS,
    'smmala': SamplerType.SMMALA,
    'rmhmc': SamplerType.RMHMC,
    'slice': SamplerType.SLICE,
    'ram': SamplerType.RAM,
}

TUNER_NAMES = ('vanilla', 'acceptance_rate', 'dual_averaging')

# Asymptotically optimal acceptance rates (Roberts & Rosenthal; Hoffman & Gelman)
DEFAULT_TARGET_RATES = {
    SamplerType.RWM: 0.234,
    SamplerType.IMH: 0.234,
    SamplerType.MALA: 0.574,
    SamplerType.HMC: 0.65,
    SamplerType.NUTS: 0.8,
    SamplerType.SMMALA: 0.574,
    SamplerType.RMHMC: 0.65,
    SamplerType.SLICE: 1.0,
    SamplerType.RAM: 0.234,
}

# Number of proposals per tuning window
DEFAULT_TUNE_PERIOD = 100

# Logistic sharpness of the acceptance-rate score (2 * logistic(k * (rate - target)))
DEFAULT_SCORE_K = 7.0

# Dual averaging hyperparameters (Hoffman & Gelman 2014, section 3.2)
DUAL_AVERAGING_GAMMA = 0.05
DUAL_AVERAGING_T0 = 10.0
DUAL_AVERAGING_KAPPA = 0.75
