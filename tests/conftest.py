import pytest
import torch

from vmc_sampler import global_var
from vmc_sampler.graph import Hypercube
from vmc_sampler.hamiltonian import Spin
from vmc_sampler.model import AbstractWaveFunction, RbmSpin


class ConstantWaveFunction(AbstractWaveFunction):
    """psi(v) = 1 for every configuration. Counts calls to log_val_diff."""

    def __init__(self, hilbert):
        super().__init__(hilbert)
        self.n_diff_calls = 0

    def init_lookup(self, v):
        return torch.zeros(1, dtype=torch.float64)

    def update_lookup(self, v, tochange, newconf, lt):
        return None

    def log_val(self, v, lt=None):
        return 0j

    def log_val_diff(self, v, tochange, newconf, lt):
        self.n_diff_calls += 1
        return 0j


class BrokenLookupWaveFunction(RbmSpin):
    """RBM whose look-up update forgets to add the change."""

    def update_lookup(self, v, tochange, newconf, lt):
        return None


@pytest.fixture(autouse=True)
def no_debug():
    global_var.set_debug(False)
    yield
    global_var.set_debug(False)


@pytest.fixture
def ring4():
    return Hypercube(4, ndim=1, pbc=True)


@pytest.fixture
def ring6():
    return Hypercube(6, ndim=1, pbc=True)


@pytest.fixture
def spins4():
    return Spin(0.5, 4)


@pytest.fixture
def rbm4(spins4):
    return RbmSpin(spins4, alpha=2, sigma=0.3, seed=11)


@pytest.fixture
def constant4(spins4):
    return ConstantWaveFunction(spins4)
