"""
Sampler Families for MCMC Jobs

Each module implements one algorithm as a frozen config dataclass, a mutable
working-state dataclass and four module-level functions:

    initialize(pstate, model, sampler)
    create_working_state(pstate, sampler, tuner)
    step(key, pstate, sstate, tune, sampler, model) -> accepted
    reset(pstate, sstate, tune, x, model, sampler, tuner)

To add a new sampler:
1. Add enum value to SamplerType in settings.py
2. Create new file in samplers/ with the four functions
3. Add to SAMPLER_REGISTRY and SAMPLER_CLASSES in samplers/dispatch.py
4. Export from this __init__.py
"""

from .rand_walk import RandomWalkMetropolis
from .imh import IndependentMetropolis
from .mala import MALA
from .hmc import HMC
from .nuts import NUTS
from .smmala import SMMALA
from .rmhmc import RMHMC
from .slice import SliceSampler
from .ram import RAM
from .dispatch import SamplerOps, get_sampler_ops, make_sampler

__all__ = [
    'RandomWalkMetropolis',
    'IndependentMetropolis',
    'MALA',
    'HMC',
    'NUTS',
    'SMMALA',
    'RMHMC',
    'SliceSampler',
    'RAM',
    'SamplerOps',
    'get_sampler_ops',
    'make_sampler',
]
