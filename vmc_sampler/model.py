import math

import torch
import torch.nn as nn

from .errors import SamplerConfigError


def init_weights_normal(sigma=0.01, generator=None):
    """Return an initializer drawing parameters from N(0, sigma^2)."""

    def init(tensor):
        with torch.no_grad():
            tensor.copy_(sigma * torch.randn(tensor.shape, dtype=tensor.dtype, generator=generator))
        return tensor

    return init


def _log_cosh(x):
    if x.is_complex():
        return torch.log(torch.cosh(x))
    # stable for large |x|
    ax = torch.abs(x)
    return ax + torch.log1p(torch.exp(-2.0 * ax)) - math.log(2.0)


class AbstractWaveFunction(nn.Module):
    """
    Amplitude oracle used by the samplers.

    A wavefunction returns log(psi(v)) for a configuration v. To make local
    updates cheap it also manages a look-up table tied to one configuration:

    - ``init_lookup(v)`` builds the table for v,
    - ``log_val_diff(v, tochange, newconf, lt)`` returns
      log(psi(v')) - log(psi(v)) where v' is v with ``v'[tochange[k]] = newconf[k]``,
      without modifying v or lt,
    - ``update_lookup(v, tochange, newconf, lt)`` brings lt in sync with v'
      and must be called before v itself is changed.
    """

    def __init__(self, hilbert, param_dtype=torch.float64):
        super().__init__()
        if hilbert.size <= 0:
            raise SamplerConfigError("Hilbert space size must be positive")
        self.hilbert = hilbert
        self.param_dtype = param_dtype

    @property
    def nv(self):
        return self.hilbert.size

    def _as_input(self, v):
        return torch.as_tensor(v).to(self.param_dtype)

    def log_val(self, v, lt=None):
        raise NotImplementedError

    def log_val_diff(self, v, tochange, newconf, lt):
        raise NotImplementedError

    def init_lookup(self, v):
        raise NotImplementedError

    def update_lookup(self, v, tochange, newconf, lt):
        raise NotImplementedError

    def forward(self, v):
        """psi(v) for a single configuration or a batch."""
        v = torch.as_tensor(v)
        if v.ndim == 1:
            return torch.exp(torch.tensor(self.log_val(v), dtype=torch.complex128))
        return torch.stack([torch.exp(torch.tensor(self.log_val(x), dtype=torch.complex128)) for x in v])

    # parameter vector helpers

    def from_params_to_vec(self):
        return torch.cat([param.data.flatten() for param in self.parameters()])

    @property
    def num_params(self):
        return len(self.from_params_to_vec())

    def load_params(self, new_params):
        new_params = torch.as_tensor(new_params)
        if len(new_params) != self.num_params:
            raise ValueError(f"Expected {self.num_params} parameters, got {len(new_params)}")
        pointer = 0
        for param in self.parameters():
            num_param = param.numel()
            new_param_values = new_params[pointer:pointer + num_param].view(param.shape)
            with torch.no_grad():
                param.copy_(new_param_values)
            pointer += num_param

    def _changes(self, v, tochange, newconf):
        idx = torch.as_tensor(list(tochange), dtype=torch.long)
        delta = torch.as_tensor(list(newconf), dtype=self.param_dtype) - self._as_input(v)[idx]
        return idx, delta


class RbmSpin(AbstractWaveFunction):
    """
    Restricted Boltzmann machine

        log psi(v) = sum_i a_i v_i + sum_j log cosh(theta_j),
        theta_j = b_j + sum_i W_ij v_i.

    The look-up table is the vector of angles theta.
    """

    def __init__(self, hilbert, alpha=1, nhidden=None, use_visible_bias=True, use_hidden_bias=True,
                 param_dtype=torch.float64, sigma=0.01, seed=None):
        super().__init__(hilbert, param_dtype=param_dtype)
        self.nh = int(nhidden) if nhidden is not None else int(round(alpha * self.nv))
        if self.nh <= 0:
            raise SamplerConfigError(f"Number of hidden units must be positive, got {self.nh}")

        generator = torch.Generator().manual_seed(seed) if seed is not None else None
        init = init_weights_normal(sigma, generator)

        self.W = nn.Parameter(init(torch.empty(self.nv, self.nh, dtype=param_dtype)))
        self.a = nn.Parameter(init(torch.empty(self.nv, dtype=param_dtype)), requires_grad=use_visible_bias)
        self.b = nn.Parameter(init(torch.empty(self.nh, dtype=param_dtype)), requires_grad=use_hidden_bias)
        if not use_visible_bias:
            nn.init.zeros_(self.a)
        if not use_hidden_bias:
            nn.init.zeros_(self.b)

    @torch.no_grad()
    def init_lookup(self, v):
        return self.b + self._as_input(v) @ self.W

    @torch.no_grad()
    def log_val(self, v, lt=None):
        v = self._as_input(v)
        theta = lt if lt is not None else self.b + v @ self.W
        return complex((v @ self.a + torch.sum(_log_cosh(theta))).item())

    @torch.no_grad()
    def log_val_diff(self, v, tochange, newconf, lt):
        if len(tochange) == 0:
            return 0j
        idx, delta = self._changes(v, tochange, newconf)
        theta_new = lt + delta @ self.W[idx]
        diff = delta @ self.a[idx] + torch.sum(_log_cosh(theta_new) - _log_cosh(lt))
        return complex(diff.item())

    @torch.no_grad()
    def update_lookup(self, v, tochange, newconf, lt):
        if len(tochange) == 0:
            return
        idx, delta = self._changes(v, tochange, newconf)
        lt.add_(delta @ self.W[idx])


class Jastrow(AbstractWaveFunction):
    """
    Two-body Jastrow wavefunction

        log psi(v) = 1/2 sum_{i != j} v_i W_ij v_j

    with W symmetric and zero on the diagonal. The look-up table is the local
    field h = W v.
    """

    def __init__(self, hilbert, param_dtype=torch.float64, sigma=0.01, seed=None):
        super().__init__(hilbert, param_dtype=param_dtype)
        generator = torch.Generator().manual_seed(seed) if seed is not None else None
        init = init_weights_normal(sigma, generator)
        self.J = nn.Parameter(init(torch.empty(self.nv, self.nv, dtype=param_dtype)))

    @property
    def W(self):
        upper = torch.triu(self.J, diagonal=1)
        return upper + upper.T

    @torch.no_grad()
    def init_lookup(self, v):
        return self.W @ self._as_input(v)

    @torch.no_grad()
    def log_val(self, v, lt=None):
        v = self._as_input(v)
        h = lt if lt is not None else self.W @ v
        return complex((0.5 * (v @ h)).item())

    @torch.no_grad()
    def log_val_diff(self, v, tochange, newconf, lt):
        if len(tochange) == 0:
            return 0j
        idx, delta = self._changes(v, tochange, newconf)
        W_ss = self.W[idx][:, idx]
        diff = delta @ lt[idx] + 0.5 * (delta @ (W_ss @ delta))
        return complex(diff.item())

    @torch.no_grad()
    def update_lookup(self, v, tochange, newconf, lt):
        if len(tochange) == 0:
            return
        idx, delta = self._changes(v, tochange, newconf)
        lt.add_(delta @ self.W[idx])


class ProductState(AbstractWaveFunction):
    """Uncorrelated state log psi(v) = sum_i f(v_i), one parameter per local state
    and site. It has no look-up table (``None``)."""

    def __init__(self, hilbert, param_dtype=torch.float64, sigma=0.01, seed=None):
        super().__init__(hilbert, param_dtype=param_dtype)
        generator = torch.Generator().manual_seed(seed) if seed is not None else None
        init = init_weights_normal(sigma, generator)
        self._local = torch.as_tensor(hilbert.local_states(), dtype=torch.float64)
        self.f = nn.Parameter(init(torch.empty(self.nv, hilbert.local_size, dtype=param_dtype)))

    def _state_index(self, values):
        values = torch.as_tensor(values, dtype=torch.float64).reshape(-1, 1)
        return torch.argmin(torch.abs(values - self._local), dim=1)

    def init_lookup(self, v):
        return None

    def update_lookup(self, v, tochange, newconf, lt):
        return None

    @torch.no_grad()
    def log_val(self, v, lt=None):
        k = self._state_index(v)
        return complex(torch.sum(self.f[torch.arange(self.nv), k]).item())

    @torch.no_grad()
    def log_val_diff(self, v, tochange, newconf, lt):
        if len(tochange) == 0:
            return 0j
        idx = torch.as_tensor(list(tochange), dtype=torch.long)
        old = self._state_index(torch.as_tensor(v)[idx])
        new = self._state_index(list(newconf))
        return complex(torch.sum(self.f[idx, new] - self.f[idx, old]).item())
