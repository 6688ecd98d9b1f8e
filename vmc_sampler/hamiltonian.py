import itertools

import numpy as np
from autoray import do

from .errors import SamplerConfigError
from .parallel import WorkerContext
from .utils import field_exists, field_or_default_val, field_val, matrix_from_json


class Hilbert:
    """Discrete Hilbert space: `size` sites, each taking one of `local_states()`.

    Configurations are 1D arrays of the chosen backend ("torch" by default).
    """

    def __init__(self, local_states, size, backend="torch"):
        local_states = [float(s) for s in local_states]
        if len(local_states) == 0:
            raise SamplerConfigError("The local Hilbert space must contain at least one state")
        if len(set(local_states)) != len(local_states):
            raise SamplerConfigError(f"Local states must be distinct, got {local_states}")
        if int(size) <= 0:
            raise SamplerConfigError("Hilbert Size parameter must be positive")
        self._local = local_states
        self._size = int(size)
        self.backend = backend

    @property
    def size(self):
        return self._size

    @property
    def local_size(self):
        return len(self._local)

    def local_states(self):
        return list(self._local)

    def is_legal(self, value):
        return any(abs(value - s) <= np.finfo(float).eps for s in self._local)

    def random_state(self, rng):
        """Uniformly random configuration, one draw of `rng` per site."""
        idx = rng.integers(0, self.local_size, size=self.size)
        vals = np.asarray(self._local, dtype=np.float64)[idx]
        return do("array", vals, like=self.backend)

    def all_states(self):
        vals = np.array(list(itertools.product(self._local, repeat=self.size)), dtype=np.float64)
        return do("array", vals, like=self.backend)

    def update_conf(self, v, tochange, newconf):
        """Set v[tochange[k]] = newconf[k] in place after checking the new values."""
        if len(v) != self.size:
            raise SamplerConfigError(f"Configuration has {len(v)} sites, Hilbert space has {self.size}")
        if len(tochange) != len(newconf):
            raise ValueError("tochange and newconf must have the same length")
        for val in newconf:
            if not self.is_legal(float(val)):
                raise ValueError(f"{val} is not a local state of this Hilbert space ({self._local})")
        for site, val in zip(tochange, newconf):
            v[site] = float(val)

    def __repr__(self):
        return f"{type(self).__name__}(size={self.size}, local_states={self._local})"


class CustomHilbert(Hilbert):
    """User-defined quantum numbers."""

    def __init__(self, quantum_numbers, size, backend="torch"):
        super().__init__(quantum_numbers, size, backend=backend)


class Spin(Hilbert):
    """Spin-s chain in the (2 s_z) basis: local states -2s, -2s+2, ..., 2s."""

    def __init__(self, s, N, backend="torch"):
        two_s = 2 * s
        if s <= 0 or abs(two_s - round(two_s)) > 1e-12:
            raise SamplerConfigError(f"Spin must be a positive half-integer, got {s}")
        self.s = s
        two_s = int(round(two_s))
        super().__init__([-two_s + 2 * k for k in range(two_s + 1)], N, backend=backend)


def hilbert_from_pars(pars):
    """Build a Hilbert space from the "Hilbert" section of a parameter dictionary."""
    hpars = field_val(pars, "Hilbert")
    name = field_or_default_val(hpars, "Name", "Custom")
    if name == "Spin":
        return Spin(field_val(hpars, "S", "Hilbert"), field_val(hpars, "Nspins", "Hilbert"))
    if name == "Custom":
        if not field_exists(hpars, "QuantumNumbers"):
            raise SamplerConfigError("QuantumNumbers are not defined")
        if not field_exists(hpars, "Size"):
            raise SamplerConfigError("Hilbert space extent is not defined")
        return CustomHilbert(hpars["QuantumNumbers"], hpars["Size"])
    raise SamplerConfigError(f"Unknown Hilbert space name '{name}'")


class Ising:
    """Transverse-field Ising model on an arbitrary graph.

    H = -J sum_<ij> s_i s_j - h sum_i sigma^x_i, with s_i = +-1.
    """

    def __init__(self, graph, h, J=1.0, ctx=None):
        self.graph = graph
        self.h = float(h)
        self.J = float(J)
        self.nspins = graph.n_sites
        self._hilbert = Spin(0.5, self.nspins)
        self.bonds = self._generate_bonds()

        ctx = ctx if ctx is not None else WorkerContext.serial()
        if ctx.is_root:
            print("# Transverse-Field Ising model created")
            print(f"# h = {self.h}")
            print(f"# J = {self.J}")

    @classmethod
    def from_pars(cls, graph, pars, ctx=None):
        hpars = field_val(pars, "Hamiltonian")
        return cls(
            graph,
            field_val(hpars, "h", "Hamiltonian"),
            J=field_or_default_val(hpars, "J", 1.0),
            ctx=ctx,
        )

    @property
    def hilbert(self):
        return self._hilbert

    def _generate_bonds(self):
        # bonds[i] holds the neighbors j > i of site i
        adj = self.graph.adjacency_list()
        return [sorted(s for s in adj[i] if s > i) for i in range(self.nspins)]

    def find_conn(self, v):
        """
        Connected elements of the Hamiltonian for configuration v.

        Returns
        -------
        mel : list of float
            Matrix elements H(v, v'(k)).
        connectors : list of list of int
            Sites changed to go from v to v'(k). Empty for the diagonal element.
        newconfs : list of list of float
            New values on those sites.
        """
        mel = [0.0]
        connectors = [[]]
        newconfs = [[]]

        for i in range(self.nspins):
            vi = float(v[i])
            mel.append(-self.h)
            connectors.append([i])
            newconfs.append([-vi])
            for j in self.bonds[i]:
                mel[0] -= self.J * vi * float(v[j])

        return mel, connectors, newconfs

    def __repr__(self):
        return f"Ising(h={self.h}, J={self.J}, graph={self.graph})"


class LocalOperator:
    """Matrix acting on a few sites.

    The local basis enumerates the local states of ``acting_on`` with the first
    site as the most significant digit, and ``matrix[row, col]`` is
    <v_row|O|v_col>.
    """

    def __init__(self, hilbert, matrix, acting_on):
        self.hilbert = hilbert
        self.acting_on = [int(s) for s in acting_on]
        if len(self.acting_on) == 0:
            raise SamplerConfigError("A local operator must act on at least one site")
        if len(set(self.acting_on)) != len(self.acting_on):
            raise SamplerConfigError(f"Repeated sites in {self.acting_on}")
        if any(not 0 <= s < hilbert.size for s in self.acting_on):
            raise SamplerConfigError(f"Sites {self.acting_on} are outside the Hilbert space")

        self.matrix = np.asarray(matrix, dtype=complex)
        dim = hilbert.local_size ** len(self.acting_on)
        if self.matrix.shape != (dim, dim):
            raise SamplerConfigError(
                f"Operator on {len(self.acting_on)} sites must be {dim}x{dim}, "
                f"got shape {self.matrix.shape}"
            )

        self._local = hilbert.local_states()
        self._states = [list(s) for s in itertools.product(self._local, repeat=len(self.acting_on))]
        self._index = {x: k for k, x in enumerate(self._local)}

    def _row(self, v):
        row = 0
        for s in self.acting_on:
            row = row * len(self._local) + self._index[float(v[s])]
        return row

    def add_conn(self, v, mel, connectors, newconfs):
        """Append the connected elements of this operator; the diagonal goes to mel[0]."""
        row = self._row(v)
        mel[0] += self.matrix[row, row]
        for col in np.flatnonzero(self.matrix[row]):
            if col == row:
                continue
            mel.append(complex(self.matrix[row, col]))
            connectors.append(list(self.acting_on))
            newconfs.append(list(self._states[col]))


class CustomHamiltonian:
    """Sum of local operators, each given by its matrix and the sites it acts on."""

    def __init__(self, hilbert, operators, acting_on, ctx=None):
        if len(operators) != len(acting_on):
            raise SamplerConfigError(
                f"The custom Hamiltonian definition is inconsistent: {len(operators)} "
                f"operators and {len(acting_on)} ActingOn entries"
            )
        self._hilbert = hilbert
        self.operators = [LocalOperator(hilbert, op, sites) for op, sites in zip(operators, acting_on)]

        ctx = ctx if ctx is not None else WorkerContext.serial()
        if ctx.is_root:
            print(f"# Custom Hamiltonian created with {len(self.operators)} local operators")

    @classmethod
    def from_pars(cls, pars, ctx=None):
        """Build from the "Hilbert" section and the "Operators" / "ActingOn"
        fields of the "Hamiltonian" section."""
        hpars = field_val(pars, "Hamiltonian")
        if not field_exists(hpars, "Operators"):
            raise SamplerConfigError("Local operators in the Hamiltonian are not defined")
        if not field_exists(hpars, "ActingOn"):
            raise SamplerConfigError("Local operators support in the Hamiltonian is not defined")
        operators = [matrix_from_json(op) for op in hpars["Operators"]]
        return cls(hilbert_from_pars(pars), operators, hpars["ActingOn"], ctx=ctx)

    @property
    def hilbert(self):
        return self._hilbert

    def find_conn(self, v):
        """Connected elements, same layout as ``Ising.find_conn``."""
        mel = [0j]
        connectors = [[]]
        newconfs = [[]]
        for op in self.operators:
            op.add_conn(v, mel, connectors, newconfs)
        mel[0] = complex(mel[0])
        return mel, connectors, newconfs

    def __repr__(self):
        return f"CustomHamiltonian(n_operators={len(self.operators)}, hilbert={self._hilbert})"
