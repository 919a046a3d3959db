"""
Output sinks for persisted chain states.

This module provides:
- OutputOptions: where and what a job persists
- NStateOutput: preallocated in-memory buffers, one slot per saved state
- IOStreamOutput: one CSV record per saved state appended to a file
- load_stream: rebuild a Chain from a stream file

Stream file layout:
    # mcjob-stream nsteps=<T> burnin=<B> thinning=<K>
    x1,...,xd,logtarget[,grad1,...,gradd][,<diagnostic names>]
    <one comma-separated record per saved state>
"""

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

import numpy as np

from ..error_handling import ConfigurationError, OutputOverflowError
from ..settings import OutputDestination
from .chain import Chain
from .types import MCRange

import logging
logger = logging.getLogger('mcjob')

_STREAM_MAGIC = '# mcjob-stream'


@dataclass(frozen=True)
class OutputOptions:
    """
    Output settings of a job.

    Fields:
        destination: OutputDestination (or its string value)
        filepath: Stream file path, required for IOSTREAM
        save_gradient: Persist the gradient with each state
        diagnostics: Names of per-step diagnostics to persist
        resizable: Let an in-memory output grow instead of raising on overflow
    """
    destination: OutputDestination = OutputDestination.NSTATE
    filepath: Optional[str] = None
    save_gradient: bool = False
    diagnostics: Tuple[str, ...] = ('accept',)
    resizable: bool = False

    def __post_init__(self):
        try:
            destination = OutputDestination(self.destination)
        except ValueError:
            valid = [d.value for d in OutputDestination]
            raise ConfigurationError(
                f"OutputOptions: destination must be one of {valid}, got {self.destination!r}"
            ) from None
        object.__setattr__(self, 'destination', destination)
        object.__setattr__(self, 'diagnostics', tuple(self.diagnostics))
        if destination == OutputDestination.IOSTREAM and not self.filepath:
            raise ConfigurationError("OutputOptions: destination 'iostream' requires a filepath")


def _diagnostic_value(pstate, name) -> float:
    value = pstate.diagnostics.get(name)
    return np.nan if value is None else float(value)


class NStateOutput:
    """
    In-memory output with one preallocated slot per saved state.

    Args:
        size: Parameter dimension
        n: Number of slots (normally range.npoststeps)
        save_gradient: Allocate and fill a gradient buffer
        diagnostics: Names of diagnostics to record
        resizable: Double the capacity instead of raising when full
    """

    def __init__(self, size, n, save_gradient=False, diagnostics=('accept',), resizable=False):
        self.size = size
        self.n = n
        self.save_gradient = save_gradient
        self.resizable = resizable
        self.count = 0
        self.start = None  # First slot written (nonzero for a job resumed from a checkpoint)
        self.closed = False
        self.samples = np.full((n, size), np.nan)
        self.logtargets = np.full(n, np.nan)
        self.gradients = np.full((n, size), np.nan) if save_gradient else None
        self.diagnostics = {name: np.full(n, np.nan) for name in diagnostics}

    def _grow(self):
        new_n = max(1, 2 * self.n)
        logger.debug(f"NStateOutput: growing from {self.n} to {new_n} slots")

        def grow(buffer):
            extra = np.full((new_n - self.n,) + buffer.shape[1:], np.nan)
            return np.concatenate([buffer, extra])

        self.samples = grow(self.samples)
        self.logtargets = grow(self.logtargets)
        if self.gradients is not None:
            self.gradients = grow(self.gradients)
        self.diagnostics = {name: grow(values) for name, values in self.diagnostics.items()}
        self.n = new_n

    def copy(self, pstate, i):
        """
        Write pstate into slot i (0-based save count).

        Raises:
            OutputOverflowError: If i >= n and the output is not resizable
        """
        if i >= self.n:
            if not self.resizable:
                raise OutputOverflowError(
                    f"NStateOutput: slot {i} requested but only {self.n} states were allocated"
                )
            while i >= self.n:
                self._grow()
        self.samples[i] = np.asarray(pstate.value)
        self.logtargets[i] = pstate.logtarget
        if self.gradients is not None:
            self.gradients[i] = np.asarray(pstate.gradlogtarget)
        for name, values in self.diagnostics.items():
            values[i] = _diagnostic_value(pstate, name)
        self.count = max(self.count, i + 1)
        self.start = i if self.start is None else min(self.start, i)

    def close(self):
        """In-memory buffers hold no resources; only marks the output finished."""
        self.closed = True

    def to_chain(self, mcrange, runtime=0.0, provenance=None) -> Chain:
        """Chain of the slots from the first one written up to the last one."""
        window = slice(self.start or 0, self.count)
        return Chain(
            range=mcrange,
            samples=self.samples[window].copy(),
            logtargets=self.logtargets[window].copy(),
            gradients=None if self.gradients is None else self.gradients[window].copy(),
            diagnostics={name: values[window].copy() for name, values in self.diagnostics.items()},
            runtime=runtime,
            provenance=dict(provenance or {}),
        )


class IOStreamOutput:
    """
    Streaming output: one CSV record per saved state.

    The file is opened (and the header written) on the first write, or on
    close() when nothing was written, and stays open until close(). A closed
    stream cannot be reopened.
    """

    def __init__(self, filepath, size, mcrange, save_gradient=False, diagnostics=('accept',)):
        self.filepath = Path(filepath)
        self.size = size
        self.mcrange = mcrange
        self.save_gradient = save_gradient
        self.diagnostics = tuple(diagnostics)
        self.count = 0
        self._file = None
        self._closed = False

        self.columns = [f'x{k + 1}' for k in range(size)] + ['logtarget']
        if save_gradient:
            self.columns += [f'grad{k + 1}' for k in range(size)]
        self.columns += list(self.diagnostics)

    def _open(self):
        self.filepath.parent.mkdir(parents=True, exist_ok=True)
        self._file = open(self.filepath, 'w')
        self._file.write(f"{_STREAM_MAGIC} nsteps={self.mcrange.nsteps} burnin={self.mcrange.burnin} "
                         f"thinning={self.mcrange.thinning}\n")
        self._file.write(','.join(self.columns) + '\n')

    @property
    def opened(self) -> bool:
        return self._file is not None

    @property
    def closed(self) -> bool:
        return self._closed

    def write(self, pstate):
        if self._closed:
            raise RuntimeError(f"IOStreamOutput: {self.filepath} is already closed")
        if self._file is None:
            self._open()
        row = [np.asarray(pstate.value, dtype=float), [pstate.logtarget]]
        if self.save_gradient:
            row.append(np.asarray(pstate.gradlogtarget, dtype=float))
        row.append([_diagnostic_value(pstate, name) for name in self.diagnostics])
        np.savetxt(self._file, np.concatenate(row)[None, :], delimiter=',', fmt='%.17g')
        self.count += 1

    def close(self):
        if self._closed:
            return
        if self._file is None:
            self._open()
        self._file.flush()
        self._file.close()
        self._closed = True
        logger.debug(f"Closed stream {self.filepath} after {self.count} records")


def load_stream(path, runtime=0.0, provenance=None) -> Chain:
    """
    Read a stream file written by IOStreamOutput back into a Chain.

    Raises:
        ConfigurationError: If the file is not a stream file
    """
    path = Path(path)
    with open(path) as f:
        magic = f.readline().strip()
        columns = f.readline().strip().split(',')
    match = re.match(rf'{_STREAM_MAGIC} nsteps=(\d+) burnin=(\d+) thinning=(\d+)$', magic)
    if match is None:
        raise ConfigurationError(f"load_stream: {path} is not an mcjob stream file")
    mcrange = MCRange(*(int(g) for g in match.groups()))

    data = np.loadtxt(path, delimiter=',', skiprows=2, ndmin=2)
    if data.size == 0:
        data = np.empty((0, len(columns)))

    size = sum(1 for c in columns if re.fullmatch(r'x\d+', c))
    samples = data[:, :size]
    logtargets = data[:, size]
    offset = size + 1
    gradients = None
    if offset < len(columns) and columns[offset] == 'grad1':
        gradients = data[:, offset:offset + size]
        offset += size
    diagnostics = {name: data[:, offset + j] for j, name in enumerate(columns[offset:])}

    return Chain(range=mcrange, samples=samples, logtargets=logtargets, gradients=gradients,
                 diagnostics=diagnostics, runtime=runtime, provenance=dict(provenance or {}))
