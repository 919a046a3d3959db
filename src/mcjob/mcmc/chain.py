"""
Chain - the output artifact of a job.

A Chain holds the persisted states of one run: samples, log-targets, optional
gradients and per-step diagnostics, all aligned on the saved iterations, plus
the run time and a provenance dict describing how the chain was produced.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import json
import numpy as np

from ..error_handling import ConfigurationError
from .types import MCRange


@dataclass
class Chain:
    """
    Persisted states of a finished job.

    Fields:
        range: MCRange the job ran with
        samples: (n, d) array of saved parameter values
        logtargets: (n,) log-target at each saved value
        gradients: (n, d) gradients, or None when not saved
        diagnostics: name -> (n,) array of per-step statistics
        runtime: Wall-clock seconds spent in run()
        provenance: How the chain was produced (sampler, tuner, model, mode)
    """
    range: MCRange
    samples: np.ndarray
    logtargets: np.ndarray
    gradients: Optional[np.ndarray] = None
    diagnostics: Dict[str, np.ndarray] = field(default_factory=dict)
    runtime: float = 0.0
    provenance: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.samples = np.asarray(self.samples, dtype=float)
        if self.samples.ndim == 1:
            self.samples = self.samples[:, None]
        self.logtargets = np.asarray(self.logtargets, dtype=float)
        n = self.samples.shape[0]

        if self.samples.ndim != 2:
            raise ConfigurationError(f"Chain: samples must be 2-D, got shape {self.samples.shape}")
        if self.logtargets.shape != (n,):
            raise ConfigurationError(
                f"Chain: {n} samples but logtargets has shape {self.logtargets.shape}"
            )
        if self.gradients is not None:
            self.gradients = np.asarray(self.gradients, dtype=float)
            if self.gradients.shape != self.samples.shape:
                raise ConfigurationError(
                    f"Chain: gradients shape {self.gradients.shape} does not match "
                    f"samples shape {self.samples.shape}"
                )
        self.diagnostics = {name: np.asarray(values) for name, values in self.diagnostics.items()}
        for name, values in self.diagnostics.items():
            if values.shape[:1] != (n,):
                raise ConfigurationError(
                    f"Chain: diagnostic '{name}' has {values.shape[0] if values.ndim else 0} "
                    f"entries, expected {n}"
                )

    @property
    def nsamples(self) -> int:
        return self.samples.shape[0]

    @property
    def ndim(self) -> int:
        return self.samples.shape[1]

    @property
    def acceptance_rate(self) -> Optional[float]:
        """Fraction of saved steps whose proposal was accepted, if recorded."""
        if 'accept' not in self.diagnostics or self.nsamples == 0:
            return None
        return float(np.mean(self.diagnostics['accept']))

    def last_value(self) -> np.ndarray:
        return self.samples[-1].copy()

    def __str__(self):
        return (f"{self.ndim} parameters, {self.nsamples} samples (per parameter), "
                f"{self.runtime:.1f} sec.")

    def save(self, path) -> Path:
        """
        Save the chain to a compressed .npz file.

        Args:
            path: Destination path (.npz appended by numpy if missing)

        Returns:
            Path of the written file
        """
        path = Path(path)
        arrays = {
            'samples': self.samples,
            'logtargets': self.logtargets,
            'range': np.array([self.range.nsteps, self.range.burnin, self.range.thinning]),
            'runtime': np.array(self.runtime),
            'provenance': np.array(json.dumps(self.provenance, default=str)),
        }
        if self.gradients is not None:
            arrays['gradients'] = self.gradients
        for name, values in self.diagnostics.items():
            arrays[f'diag_{name}'] = values
        np.savez_compressed(path, **arrays)
        return path if path.suffix == '.npz' else path.with_suffix(path.suffix + '.npz')

    @classmethod
    def load(cls, path) -> 'Chain':
        with np.load(path, allow_pickle=False) as data:
            nsteps, burnin, thinning = (int(v) for v in data['range'])
            return cls(
                range=MCRange(nsteps, burnin, thinning),
                samples=data['samples'],
                logtargets=data['logtargets'],
                gradients=data['gradients'] if 'gradients' in data.files else None,
                diagnostics={k[len('diag_'):]: data[k] for k in data.files if k.startswith('diag_')},
                runtime=float(data['runtime']),
                provenance=json.loads(str(data['provenance'])),
            )
