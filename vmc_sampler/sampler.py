import cmath
import math

import numpy as np
import torch
from tqdm import tqdm

from . import global_var
from .errors import LookupConsistencyError, SamplerConfigError
from .observables import local_value
from .parallel import WorkerContext, make_rng
from .utils import field_or_default_val, field_val

EPS = np.finfo(float).eps


# --- Utils ---


def generate_clusters(distances, dmax):
    """
    Ordered site pairs (i, j), i != j, whose graph distance is at most dmax.

    Parameters
    ----------
    distances : sequence of sequences
        N x N table of graph distances, negative entries for unreachable pairs.
    dmax : int
        Maximum distance of an exchange.

    Returns
    -------
    tuple of (int, int)
    """
    nv = len(distances)
    if any(len(row) != nv for row in distances):
        raise SamplerConfigError("The distance table must be square")

    clusters = tuple(
        (i, j)
        for i in range(nv)
        for j in range(nv)
        if i != j and 0 <= distances[i][j] <= dmax
    )
    if len(clusters) == 0:
        raise SamplerConfigError(
            f"No pair of sites within distance {dmax}: dmax is too small "
            "or the graph is disconnected"
        )
    return clusters


def acceptance_ratio(log_val_diff, beta=1.0):
    """min(1, |exp(beta * log_val_diff)|^2), computed in log space."""
    return math.exp(min(0.0, 2.0 * beta * complex(log_val_diff).real))


def _same_log_val(lv1, lv2, tol):
    try:
        return abs(cmath.exp(complex(lv1) - complex(lv2)) - 1.0) <= tol
    except OverflowError:
        return False


# --- Sampler ---


class AbstractSampler:
    """
    Markov chain sampler of |psi(v)|^2.

    A sampler owns one or more replicas, each made of a configuration and the
    look-up table of ``psi`` for that configuration. Replica 0 is the physical
    chain. The random generator is seeded once per worker through ``ctx``.
    """

    nreplicas = 1

    def __init__(self, psi, ctx=None, seed=None):
        self.psi = psi
        self.hi = psi.hilbert
        self.nv = self.hi.size
        if self.nv <= 0:
            raise SamplerConfigError("Hilbert space size must be positive")
        self.ctx = ctx if ctx is not None else WorkerContext.serial()

        self.v_ = []
        self.lt_ = []
        self.accept_ = np.zeros(self._n_counters())
        self.moves_ = np.zeros(self._n_counters())

        self.rng = None
        self.seed(seed)

    def _n_counters(self):
        return 1

    def _print(self, msg):
        if self.ctx.is_root:
            print(msg)

    def seed(self, base_seed=None):
        """Seed this worker's generator. Involves one broadcast from rank 0."""
        self.rng = make_rng(self.ctx, base_seed)

    def _random_config(self):
        return torch.as_tensor(self.hi.random_state(self.rng), dtype=torch.float64).clone()

    def reset(self, initrandom=False):
        """Zero the acceptance counters and rebuild the look-up tables,
        optionally starting every replica from a random configuration."""
        if initrandom:
            self.v_ = [self._random_config() for _ in range(self.nreplicas)]

        self.lt_ = [self.psi.init_lookup(v) for v in self.v_]

        self.accept_ = np.zeros(self._n_counters())
        self.moves_ = np.zeros(self._n_counters())

    def sweep(self):
        raise NotImplementedError

    @property
    def current_config(self):
        """Copy of the physical configuration (replica 0)."""
        return self.v_[0].clone()

    @current_config.setter
    def current_config(self, v):
        self.v_[0] = self._validated_config(v)
        self.lt_[0] = self.psi.init_lookup(self.v_[0])

    @property
    def current_lookup(self):
        return self.lt_[0]

    def _validated_config(self, v):
        values = [float(x) for x in torch.as_tensor(v).flatten()]
        if len(values) != self.nv:
            raise SamplerConfigError(
                f"Configuration has {len(values)} sites, Hilbert space has {self.nv}"
            )
        new_v = torch.zeros(self.nv, dtype=torch.float64)
        self.hi.update_conf(new_v, list(range(self.nv)), values)
        return new_v

    def acceptance(self):
        """Accepted / attempted moves for every counter, 0 where nothing was attempted."""
        return np.divide(
            self.accept_,
            self.moves_,
            out=np.zeros_like(self.accept_),
            where=self.moves_ > 0,
        )

    def check_lookup(self):
        """Raise LookupConsistencyError if a look-up table disagrees with its configuration."""
        for rep, (v, lt) in enumerate(zip(self.v_, self.lt_)):
            lv = self.psi.log_val(v)
            lv_lt = self.psi.log_val(v, lt)
            if not _same_log_val(lv, lv_lt, global_var.LOOKUP_TOL):
                raise LookupConsistencyError(
                    f"Replica {rep}: log_val is {lv} and log_val with look-up table is {lv_lt}"
                )

    def _metropolis_move(self, rep, tochange, newconf, beta=1.0):
        """Propose v -> v' on replica `rep`; returns True if accepted."""
        v = self.v_[rep]
        lt = self.lt_[rep]

        lvd = self.psi.log_val_diff(v, tochange, newconf, lt)
        ratio = acceptance_ratio(lvd, beta)

        if global_var.DEBUG:
            psival1 = self.psi.log_val(v)
            if not _same_log_val(psival1, self.psi.log_val(v, lt), global_var.LOOKUP_TOL):
                raise LookupConsistencyError(
                    f"Rank {self.ctx.rank}: log_val is {psival1} and log_val with look-up "
                    f"table is {self.psi.log_val(v, lt)}"
                )

        if ratio > self.rng.random():
            self.psi.update_lookup(v, tochange, newconf, lt)
            self.hi.update_conf(v, tochange, newconf)

            if global_var.DEBUG:
                psival2 = self.psi.log_val(v)
                if not _same_log_val(psival2 - psival1, lvd, global_var.LOOKUP_TOL):
                    raise LookupConsistencyError(
                        f"Rank {self.ctx.rank}: {psival2 - psival1} and log_val_diff is {lvd}"
                    )
                if not _same_log_val(psival2, self.psi.log_val(v, lt), global_var.LOOKUP_TOL):
                    raise LookupConsistencyError(
                        f"Rank {self.ctx.rank}: {psival2} and log_val with look-up table is "
                        f"{self.psi.log_val(v, lt)}"
                    )
            return True
        return False

    def burn_in(self, n_sweeps):
        for _ in range(n_sweeps):
            self.sweep()

    def sample(self, op, chain_length=1, n_discard=0, pgbar=False):
        """
        Run `chain_length` sweeps and estimate the local value of `op` after each.

        Returns
        -------
        dict
            mean, variance and naive error of the local estimator, the summed
            within-half-chain variance ``W`` and the two half-chain means for
            a Gelman-Rubin check, the number of samples and the acceptance.
        """
        if chain_length < 1:
            raise ValueError(f"chain_length must be positive, got {chain_length}")

        self.burn_in(n_discard)

        # Welford's algorithm for the variance in a single pass
        n = 0
        op_loc_mean = 0j
        op_loc_M2 = 0.0
        op_loc_vec = np.zeros(chain_length, dtype=complex)

        pbar = None
        if pgbar and self.ctx.is_root:
            pbar = tqdm(total=chain_length, desc="Sampling starts for rank 0...")

        for chain_step in range(chain_length):
            self.sweep()
            op_loc = local_value(op, self.psi, self.v_[0], self.lt_[0])
            op_loc_vec[chain_step] = op_loc

            n += 1
            op_loc_mean_prev = op_loc_mean
            op_loc_mean += (op_loc - op_loc_mean) / n
            op_loc_M2 += ((op_loc - op_loc_mean_prev).conjugate() * (op_loc - op_loc_mean)).real

            if pbar is not None:
                pbar.update(1)

        if pbar is not None:
            pbar.close()

        op_loc_var = op_loc_M2 / (n - 1) if n > 1 else 0.0

        # split the chain in half for the within-chain variance
        split_chains = [c for c in np.array_split(op_loc_vec, 2) if len(c) > 0]
        W_loc = float(np.sum([np.var(c) for c in split_chains]))
        chain_means_loc = [complex(np.mean(c)) for c in split_chains]

        return {
            "mean": op_loc_mean,
            "variance": op_loc_var,
            "error": math.sqrt(op_loc_var / n),
            "W": W_loc,
            "chain_means": chain_means_loc,
            "n_samples": n,
            "acceptance": self.acceptance(),
        }


class MetropolisLocalPt(AbstractSampler):
    """
    Metropolis sampling with single-site changes and parallel tempering.

    Replica r samples |psi|^(2 beta_r) with beta_r = 1 - r / nreplicas. After
    the local sweeps of all replicas, neighboring replicas try to exchange
    their states. The acceptance vector holds the local-move rates of the
    replicas followed by their exchange rates.
    """

    def __init__(self, psi, nreplicas=1, ctx=None, seed=None):
        if int(nreplicas) < 1:
            raise SamplerConfigError(f"Number of replicas must be at least 1, got {nreplicas}")
        self.nreplicas = int(nreplicas)

        self.local_states = psi.hilbert.local_states()
        self.nstates = len(self.local_states)
        if self.nstates < 2:
            raise SamplerConfigError("Local moves need at least two local states")

        self.betas = [1.0 - i / self.nreplicas for i in range(self.nreplicas)]

        super().__init__(psi, ctx=ctx, seed=seed)

        self.reset(True)

        self._print("# Metropolis sampler with parallel tempering is ready")
        self._print(f"# Nreplicas is equal to {self.nreplicas}")

    def _n_counters(self):
        return 2 * self.nreplicas

    def set_nreplicas(self, nreplicas):
        """Rebuild the temperature ladder and restart all replicas at random."""
        if int(nreplicas) < 1:
            raise SamplerConfigError(f"Number of replicas must be at least 1, got {nreplicas}")
        self.nreplicas = int(nreplicas)
        self.betas = [1.0 - i / self.nreplicas for i in range(self.nreplicas)]
        self.reset(True)

    def local_sweep(self, rep):
        """nv single-site Metropolis moves on replica `rep`."""
        v = self.v_[rep]
        for _ in range(self.nv):
            # picking a random site to be changed
            si = int(self.rng.integers(self.nv))

            # picking a random state different from the current one
            newstate = self.local_states[int(self.rng.integers(self.nstates))]
            while abs(newstate - float(v[si])) <= EPS:
                newstate = self.local_states[int(self.rng.integers(self.nstates))]

            if self._metropolis_move(rep, [si], [newstate], beta=self.betas[rep]):
                self.accept_[rep] += 1
            self.moves_[rep] += 1

    def sweep(self):
        for rep in range(self.nreplicas):
            self.local_sweep(rep)

        # temperature exchanges, two passes over non-overlapping pairs
        for r in range(1, self.nreplicas, 2):
            self._exchange_step(r, r - 1)

        for r in range(2, self.nreplicas, 2):
            self._exchange_step(r, r - 1)

    def _exchange_step(self, r1, r2):
        nrep = self.nreplicas
        if self.exchange_prob(r1, r2) > self.rng.random():
            self.exchange(r1, r2)
            self.accept_[nrep + r1] += 1
            self.accept_[nrep + r2] += 1
        self.moves_[nrep + r1] += 1
        self.moves_[nrep + r2] += 1

    def exchange_prob(self, r1, r2):
        """Probability to exchange the states of replicas r1 and r2."""
        lf1 = 2 * complex(self.psi.log_val(self.v_[r1], self.lt_[r1])).real
        lf2 = 2 * complex(self.psi.log_val(self.v_[r2], self.lt_[r2])).real
        return math.exp(min(0.0, (self.betas[r1] - self.betas[r2]) * (lf2 - lf1)))

    def exchange(self, r1, r2):
        self.v_[r1], self.v_[r2] = self.v_[r2], self.v_[r1]
        self.lt_[r1], self.lt_[r2] = self.lt_[r2], self.lt_[r1]

    def local_acceptance(self):
        return self.acceptance()[: self.nreplicas]

    def exchange_acceptance(self):
        return self.acceptance()[self.nreplicas:]


class MetropolisExchange(AbstractSampler):
    """
    Metropolis sampling with exchanges of the values of two sites at graph
    distance at most ``dmax``. The sum of the configuration is conserved.
    """

    def __init__(self, graph, psi, dmax=1, ctx=None, seed=None):
        if graph.n_sites != psi.hilbert.size:
            raise SamplerConfigError(
                f"Graph has {graph.n_sites} sites but the Hilbert space has {psi.hilbert.size}"
            )
        self.graph = graph
        self.dmax = dmax
        self.clusters = generate_clusters(graph.distances(), dmax)

        super().__init__(psi, ctx=ctx, seed=seed)

        if not graph.is_connected():
            print(f"Rank {self.ctx.rank}: warning, the graph is disconnected, "
                  "exchanges never cross between components")

        self.reset(True)

        self._print("# Metropolis Exchange sampler is ready")
        self._print(f"# {dmax} is the maximum distance for exchanges")

    def sweep(self):
        ncl = len(self.clusters)
        v = self.v_[0]
        for _ in range(self.nv):
            si, sj = self.clusters[int(self.rng.integers(ncl))]
            vi = float(v[si])
            vj = float(v[sj])

            if abs(vi - vj) > EPS:
                if self._metropolis_move(0, [si, sj], [vj, vi]):
                    self.accept_[0] += 1
            self.moves_[0] += 1


def sampler_from_pars(graph, psi, pars, ctx=None):
    """Build a sampler from the "Sampler" section of a parameter dictionary."""
    spars = field_val(pars, "Sampler")
    name = field_val(spars, "Name", "Sampler")
    seed = field_or_default_val(spars, "Seed", None)

    if name == "MetropolisLocal":
        return MetropolisLocalPt(psi, 1, ctx=ctx, seed=seed)
    if name == "MetropolisLocalPt":
        return MetropolisLocalPt(psi, field_val(spars, "Nreplicas", "Sampler"), ctx=ctx, seed=seed)
    if name == "MetropolisExchange":
        return MetropolisExchange(graph, psi, dmax=field_or_default_val(spars, "Dmax", 1), ctx=ctx, seed=seed)
    raise SamplerConfigError(f"Unknown sampler name '{name}'")
