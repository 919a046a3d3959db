"""
Sampler Dispatch

Maps each SamplerType tag to the module-level functions implementing it.
Jobs never call a sampler module directly; they look up its SamplerOps once at
construction and call through it. The set of samplers is closed: adding one
means adding a SamplerType, a module and an entry here.
"""

from collections import namedtuple

from ..error_handling import ConfigurationError
from ..settings import SAMPLER_NAMES, SamplerType
from . import hmc, imh, mala, nuts, ram, rand_walk, rmhmc, smmala
from . import slice as slice_module


SamplerOps = namedtuple('SamplerOps', [
    'initialize', 'create_working_state', 'step', 'reset', 'needs_gradient',
])


def _ops(module, needs_gradient):
    return SamplerOps(
        initialize=module.initialize,
        create_working_state=module.create_working_state,
        step=module.step,
        reset=module.reset,
        needs_gradient=needs_gradient,
    )


SAMPLER_REGISTRY = {
    SamplerType.RWM: _ops(rand_walk, False),
    SamplerType.IMH: _ops(imh, False),
    SamplerType.MALA: _ops(mala, True),
    SamplerType.HMC: _ops(hmc, True),
    SamplerType.NUTS: _ops(nuts, True),
    SamplerType.SMMALA: _ops(smmala, True),
    SamplerType.RMHMC: _ops(rmhmc, False),
    SamplerType.SLICE: _ops(slice_module, False),
    SamplerType.RAM: _ops(ram, False),
}

# Config classes by tag, used to build samplers from dict configs
SAMPLER_CLASSES = {
    SamplerType.RWM: rand_walk.RandomWalkMetropolis,
    SamplerType.IMH: imh.IndependentMetropolis,
    SamplerType.MALA: mala.MALA,
    SamplerType.HMC: hmc.HMC,
    SamplerType.NUTS: nuts.NUTS,
    SamplerType.SMMALA: smmala.SMMALA,
    SamplerType.RMHMC: rmhmc.RMHMC,
    SamplerType.SLICE: slice_module.SliceSampler,
    SamplerType.RAM: ram.RAM,
}


def get_sampler_ops(sampler) -> SamplerOps:
    """
    Look up the operations for a sampler config.

    Raises:
        ConfigurationError: If the object carries no known sampler_type tag
    """
    tag = getattr(sampler, 'sampler_type', None)
    if tag not in SAMPLER_REGISTRY:
        raise ConfigurationError(f"Unknown sampler: {sampler!r}")
    return SAMPLER_REGISTRY[tag]


def make_sampler(name: str, settings=None):
    """
    Build a sampler config from its config-file name and keyword settings.

    Args:
        name: One of SAMPLER_NAMES ('rwm', 'slice', ...)
        settings: Dict of keyword arguments for the config class

    Returns:
        Frozen sampler config
    """
    if name not in SAMPLER_NAMES:
        raise ConfigurationError(f"Unknown sampler name {name!r}; expected one of {sorted(SAMPLER_NAMES)}")
    cls = SAMPLER_CLASSES[SAMPLER_NAMES[name]]
    try:
        return cls(**(settings or {}))
    except TypeError as e:
        raise ConfigurationError(f"{cls.__name__}: invalid settings {settings!r} ({e})") from e
