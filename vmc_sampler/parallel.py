"""
Worker context and seed distribution.

Every worker process runs its own chains. The only communication between
workers is a single broadcast of the seed list when a sampler is seeded:
rank 0 draws one seed per worker, all workers receive the full list and keep
their own entry.
"""

from dataclasses import dataclass
from typing import Any, Callable

import numpy as np

from .errors import SamplerConfigError


def _identity(values):
    return values


@dataclass(frozen=True)
class WorkerContext:
    """Rank, number of workers and a one-to-all broadcast from rank 0."""

    rank: int = 0
    size: int = 1
    broadcast: Callable[[Any], Any] = _identity

    def __post_init__(self):
        if self.size < 1:
            raise SamplerConfigError(f"Number of workers must be positive, got {self.size}")
        if not 0 <= self.rank < self.size:
            raise SamplerConfigError(
                f"Worker rank {self.rank} is out of range for {self.size} workers"
            )

    @property
    def is_root(self):
        return self.rank == 0

    @classmethod
    def serial(cls):
        """Single-process context."""
        return cls(rank=0, size=1, broadcast=_identity)

    @classmethod
    def world(cls, comm=None):
        """Context backed by an mpi4py communicator (COMM_WORLD by default)."""
        from mpi4py import MPI

        if comm is None:
            comm = MPI.COMM_WORLD

        def bcast(values):
            return comm.bcast(values, root=0)

        return cls(rank=comm.Get_rank(), size=comm.Get_size(), broadcast=bcast)


def generate_seeds(n_workers, base_seed=None):
    """One 32-bit seed per worker.

    With ``base_seed=None`` the seeds come from fresh OS entropy, otherwise they
    are a deterministic function of ``base_seed`` and ``n_workers``.
    """
    ss = np.random.SeedSequence(base_seed)
    return [int(s) for s in ss.generate_state(n_workers, dtype=np.uint32)]


def distribute_seeds(ctx, base_seed=None):
    """Return this worker's seed. Rank 0 generates the list, everybody receives it."""
    if ctx.is_root:
        seeds = generate_seeds(ctx.size, base_seed)
    else:
        seeds = [0] * ctx.size

    seeds = ctx.broadcast(seeds)

    if len(seeds) != ctx.size:
        raise SamplerConfigError(
            f"Received {len(seeds)} seeds for {ctx.size} workers"
        )
    return seeds[ctx.rank]


def make_rng(ctx, base_seed=None):
    return np.random.default_rng(distribute_seeds(ctx, base_seed))
