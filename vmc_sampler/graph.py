import numpy as np
import quimb.tensor as qtn
from scipy.sparse import csr_matrix
from scipy.sparse.csgraph import shortest_path

from .errors import SamplerConfigError
from .utils import field_or_default_val, field_val


class AbstractGraph:
    """Static lattice topology.

    Subclasses fill ``n_nodes`` and the undirected edge list ``_edges``
    (pairs i < j); adjacency and pairwise graph distances are derived from it.
    """

    def __init__(self):
        self._edges = None
        self.n_nodes = None
        self._distances = None

    @property
    def n_sites(self):
        return self.n_nodes

    def edges(self):
        """Undirected edges (i, j) with i < j."""
        return list(self._edges)

    @property
    def n_edges(self):
        return len(self._edges)

    def adjacency_list(self):
        adj = [set() for _ in range(self.n_nodes)]
        for i, j in self._edges:
            adj[i].add(j)
            adj[j].add(i)
        return adj

    def _set_edges(self, edges):
        # drop self loops and the duplicates produced by wrapping small lattices
        self._edges = sorted({(min(i, j), max(i, j)) for i, j in edges if i != j})

    def distances(self):
        """N x N table of shortest-path lengths, -1 for unreachable pairs."""
        if self._distances is None:
            n = self.n_nodes
            rows = np.array([i for i, _ in self._edges], dtype=int)
            cols = np.array([j for _, j in self._edges], dtype=int)
            adjacency = csr_matrix((np.ones(len(rows)), (rows, cols)), shape=(n, n))
            dist = shortest_path(adjacency, directed=False, unweighted=True)
            self._distances = np.where(np.isinf(dist), -1, dist).astype(int)
        return self._distances.tolist()

    def is_connected(self):
        return all(d >= 0 for d in self.distances()[0])


def _hypercube_edges(L, ndim, pbc):
    if ndim == 1:
        return qtn.edges_1d_chain(L, cyclic=pbc)
    if ndim == 2:
        edges = qtn.edges_2d_square(L, L, cyclic=pbc)
        return [(i1 * L + j1, i2 * L + j2) for (i1, j1), (i2, j2) in edges]
    edges = qtn.edges_3d_cubic(L, L, L, cyclic=pbc)
    return [
        ((i1 * L + j1) * L + k1, (i2 * L + j2) * L + k2)
        for (i1, j1, k1), (i2, j2, k2) in edges
    ]


class Hypercube(AbstractGraph):
    """Hypercubic lattice of side L in 1, 2 or 3 dimensions, sites numbered in
    row-major (zig-zag) order."""

    def __init__(self, L, ndim=1, pbc=True):
        super().__init__()
        if L <= 0 or ndim <= 0:
            raise SamplerConfigError(f"Hypercube needs L > 0 and ndim > 0, got L={L}, ndim={ndim}")
        if ndim > 3:
            raise SamplerConfigError(f"Hypercube supports up to 3 dimensions, got {ndim}")
        self.L = int(L)
        self.ndim = int(ndim)
        self.pbc = bool(pbc)
        self.n_nodes = self.L**self.ndim
        self._set_edges(_hypercube_edges(self.L, self.ndim, self.pbc))

    def __repr__(self):
        return f"Hypercube(L={self.L}, ndim={self.ndim}, pbc={self.pbc})"


class CustomGraph(AbstractGraph):
    """Graph given by an explicit list of undirected edges."""

    def __init__(self, edges, n_sites=None):
        super().__init__()
        edges = [tuple(int(s) for s in e) for e in edges]
        for e in edges:
            if len(e) != 2 or e[0] == e[1] or min(e) < 0:
                raise SamplerConfigError(f"Invalid edge {e}")
        if n_sites is None:
            n_sites = max((max(e) for e in edges), default=-1) + 1
        if n_sites <= 0:
            raise SamplerConfigError("The graph must contain at least one site")
        if any(max(e) >= n_sites for e in edges):
            raise SamplerConfigError(f"Edges refer to sites beyond n_sites={n_sites}")
        self.n_nodes = int(n_sites)
        self._set_edges(edges)

    def __repr__(self):
        return f"CustomGraph(n_sites={self.n_sites}, n_edges={self.n_edges})"


def graph_from_pars(pars):
    """Build a graph from the "Graph" section of a parameter dictionary."""
    gpars = field_val(pars, "Graph")
    name = field_val(gpars, "Name", "Graph")
    if name == "Hypercube":
        return Hypercube(
            field_val(gpars, "L", "Graph"),
            ndim=field_or_default_val(gpars, "Dimension", 1),
            pbc=field_or_default_val(gpars, "Pbc", True),
        )
    if name == "Custom":
        return CustomGraph(
            field_val(gpars, "Edges", "Graph"),
            n_sites=field_or_default_val(gpars, "Size", None),
        )
    raise SamplerConfigError(f"Unknown graph name '{name}'")
