import cmath

import numpy as np
import pytest
import torch

from vmc_sampler.errors import SamplerConfigError
from vmc_sampler.hamiltonian import CustomHilbert, Spin
from vmc_sampler.model import Jastrow, ProductState, RbmSpin


def _models():
    spins = Spin(0.5, 6)
    return [
        RbmSpin(spins, alpha=2, sigma=0.5, seed=0),
        RbmSpin(spins, alpha=1, sigma=0.5, param_dtype=torch.complex128, seed=1),
        Jastrow(spins, sigma=0.5, seed=2),
        ProductState(CustomHilbert([0, 1, 2], 6), sigma=0.5, seed=3),
    ]


@pytest.mark.parametrize("psi", _models(), ids=lambda m: type(m).__name__)
def test_lookup_protocol(psi):
    rng = np.random.default_rng(5)
    hi = psi.hilbert
    v = torch.as_tensor(hi.random_state(rng), dtype=torch.float64)
    lt = psi.init_lookup(v)

    assert abs(psi.log_val(v) - psi.log_val(v, lt)) < 1e-10
    assert psi.log_val_diff(v, [], [], lt) == 0

    local = hi.local_states()
    for _ in range(20):
        sites = [int(s) for s in rng.choice(hi.size, size=2, replace=False)]
        newconf = [local[int(k)] for k in rng.integers(hi.local_size, size=2)]

        v_new = v.clone()
        hi.update_conf(v_new, sites, newconf)
        lvd = psi.log_val_diff(v, sites, newconf, lt)
        expected = psi.log_val(v_new) - psi.log_val(v)
        assert abs(cmath.exp(lvd - expected) - 1) < 1e-10

        psi.update_lookup(v, sites, newconf, lt)
        hi.update_conf(v, sites, newconf)
        assert abs(psi.log_val(v) - psi.log_val(v, lt)) < 1e-10


def test_rbm_forward_matches_log_val():
    psi = RbmSpin(Spin(0.5, 4), alpha=1, sigma=0.2, seed=4)
    v = torch.tensor([[1.0, -1.0, 1.0, 1.0], [-1.0, -1.0, 1.0, -1.0]], dtype=torch.float64)
    amps = psi(v)
    assert amps.shape == (2,)
    assert torch.allclose(amps[0], torch.exp(torch.tensor(psi.log_val(v[0]), dtype=torch.complex128)))


def test_rbm_log_cosh_is_stable():
    psi = RbmSpin(Spin(0.5, 2), nhidden=1, sigma=0.0, seed=0)
    with torch.no_grad():
        psi.W.fill_(500.0)
    v = torch.ones(2, dtype=torch.float64)
    lv = psi.log_val(v)
    assert np.isfinite(lv.real)
    assert lv.real == pytest.approx(1000.0 - np.log(2.0))


def test_same_seed_same_parameters():
    hi = Spin(0.5, 5)
    a = RbmSpin(hi, alpha=1, seed=9)
    b = RbmSpin(hi, alpha=1, seed=9)
    assert torch.equal(a.from_params_to_vec(), b.from_params_to_vec())


def test_load_params():
    psi = Jastrow(Spin(0.5, 3), seed=0)
    new = torch.arange(psi.num_params, dtype=torch.float64)
    psi.load_params(new)
    assert torch.equal(psi.from_params_to_vec(), new)
    with pytest.raises(ValueError):
        psi.load_params(new[:-1])


def test_jastrow_coupling_is_symmetric():
    psi = Jastrow(Spin(0.5, 4), sigma=1.0, seed=0)
    W = psi.W
    assert torch.allclose(W, W.T)
    assert torch.all(torch.diagonal(W) == 0)


def test_rbm_needs_hidden_units():
    with pytest.raises(SamplerConfigError):
        RbmSpin(Spin(0.5, 4), alpha=0)


def test_forward_single_configuration():
    psi = Jastrow(Spin(0.5, 3), sigma=0.4, seed=5)
    v = torch.tensor([1.0, -1.0, 1.0], dtype=torch.float64)
    amp = psi(v)
    assert amp.dtype == torch.complex128
    assert amp.ndim == 0
    assert torch.allclose(amp, psi(v.unsqueeze(0))[0])
