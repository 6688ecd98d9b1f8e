from .errors import LookupConsistencyError, SamplerConfigError
from .graph import CustomGraph, Hypercube, graph_from_pars
from .hamiltonian import CustomHamiltonian, CustomHilbert, Ising, Spin, hilbert_from_pars
from .model import AbstractWaveFunction, Jastrow, ProductState, RbmSpin
from .parallel import WorkerContext, distribute_seeds
from .sampler import (
    AbstractSampler,
    MetropolisExchange,
    MetropolisLocalPt,
    generate_clusters,
    sampler_from_pars,
)
from .driver import SamplingDriver

__version__ = "0.1.0"
