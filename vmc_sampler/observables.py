import cmath

import numpy as np
import torch


def local_value(op, psi, v, lt=None):
    """
    Local estimator O_loc(v) = sum_k <v|O|v'(k)> psi(v'(k)) / psi(v).

    The ratios psi(v'(k)) / psi(v) are obtained from ``psi.log_val_diff`` with
    the look-up table ``lt`` of v (built on the fly when not given).
    """
    if lt is None:
        lt = psi.init_lookup(v)
    mel, connectors, newconfs = op.find_conn(v)

    op_loc = 0j
    for m, tochange, newconf in zip(mel, connectors, newconfs):
        if m == 0:
            continue
        op_loc += m * cmath.exp(psi.log_val_diff(v, tochange, newconf, lt))
    return op_loc


def local_values(op, psi, configs):
    """Local estimator for each configuration in a batch."""
    configs = torch.as_tensor(configs, dtype=torch.float64)
    return np.array([local_value(op, psi, v) for v in configs], dtype=complex)


def exact_distribution(psi):
    """|psi(v)|^2 / sum |psi|^2 over the whole Hilbert space, for small systems."""
    all_states = torch.as_tensor(psi.hilbert.all_states(), dtype=torch.float64)
    log_vals = np.array([2 * complex(psi.log_val(v)).real for v in all_states])
    probs = np.exp(log_vals - np.max(log_vals))
    return all_states, probs / np.sum(probs)


def exact_expectation(op, psi):
    """<psi|O|psi> / <psi|psi> by full summation over the Hilbert space."""
    all_states, probs = exact_distribution(psi)
    return complex(np.sum(probs * local_values(op, psi, all_states)))
