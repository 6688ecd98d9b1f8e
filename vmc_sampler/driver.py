import os

import numpy as np

from .utils import dump_json, samples_per_worker


class SamplingDriver:
    """
    Repeatedly samples the local energy of a Hamiltonian with a given sampler.

    Every worker runs its own chain and keeps its own statistics; combining
    them across workers is left to the caller.
    """

    def __init__(self, hamiltonian, sampler, n_samples=1024, n_discard=100):
        """
        Args:
            hamiltonian: Operator exposing ``find_conn(v)``.
            sampler: A sampler exposing ``sweep()`` and ``sample(op, ...)``.
            n_samples: Total number of samples per iteration, split evenly
                among the workers of the sampler's context.
            n_discard: Number of sweeps discarded before the first iteration.
        """
        self._hamiltonian = hamiltonian
        self._sampler = sampler
        self.n_discard = int(n_discard)
        self.chain_length = samples_per_worker(int(n_samples), sampler.ctx.size)
        self.burn_in_already = False
        self.step_count = 0

    @property
    def hamiltonian(self):
        return self._hamiltonian

    @property
    def sampler(self):
        return self._sampler

    def __repr__(self):
        return (
            "SamplingDriver("
            + f"\n  step_count = {self.step_count},"
            + f"\n  chain_length = {self.chain_length},"
            + f"\n  sampler = {type(self._sampler).__name__})"
        )

    def _stats_path(self, out):
        if self._sampler.ctx.size == 1:
            return out
        root, ext = os.path.splitext(out)
        return f"{root}_rank{self._sampler.ctx.rank}{ext or '.json'}"

    def run(self, n_iter=1, out=None, pgbar=False):
        """Run `n_iter` sampling iterations; optionally dump the statistics of
        this worker to the JSON file `out` after every iteration."""
        ctx = self._sampler.ctx
        energy_stats = {"chain_length": self.chain_length, "mean": [], "error": [], "variance": [], "acceptance": []}

        for step in range(n_iter):
            n_discard = 0 if self.burn_in_already else self.n_discard
            self._sampler.reset()
            stats = self._sampler.sample(self._hamiltonian, self.chain_length, n_discard=n_discard, pgbar=pgbar)
            self.burn_in_already = True
            self.step_count += 1

            energy_stats["mean"].append(stats["mean"])
            energy_stats["error"].append(stats["error"])
            energy_stats["variance"].append(stats["variance"])
            energy_stats["acceptance"].append(np.asarray(stats["acceptance"]))

            if ctx.is_root:
                print(
                    "Step {}: Energy: {}, Err: {}, Acceptance: {}".format(
                        step, stats["mean"], stats["error"], np.round(stats["acceptance"], 4)
                    )
                )

            if out is not None:
                dump_json(energy_stats, self._stats_path(out))

        return energy_stats
