import json

import numpy as np
import torch

from .errors import SamplerConfigError


def closest_divisible(N, m):
    """Find the closest number to N that is divisible by m."""
    quotient = N // m

    lower_multiple = quotient * m
    upper_multiple = (quotient + 1) * m

    if abs(N - lower_multiple) <= abs(N - upper_multiple):
        return lower_multiple
    else:
        return upper_multiple


def samples_per_worker(n_samples, n_workers):
    """Number of samples each worker draws so that the total is the multiple of
    n_workers closest to n_samples (never less than one per worker)."""
    total = max(closest_divisible(n_samples, n_workers), n_workers)
    return total // n_workers


# --- Parameter dictionaries ---


def field_exists(pars, field):
    return isinstance(pars, dict) and field in pars


def field_val(pars, field, section=None):
    """Value of a required field. Missing fields are a configuration error."""
    if not field_exists(pars, field):
        where = f" in section '{section}'" if section is not None else ""
        raise SamplerConfigError(f"Field '{field}' is not defined{where}")
    return pars[field]


def field_or_default_val(pars, field, default):
    if field_exists(pars, field):
        return pars[field]
    return default


def load_pars(path):
    """Read a parameter dictionary from a JSON file."""
    with open(path, "r") as f:
        return json.load(f)


def complex_from_json(x):
    """Inverse of the [re, im] encoding; plain numbers are read as real."""
    if isinstance(x, (list, tuple)):
        if len(x) != 2:
            raise SamplerConfigError(f"A complex number is stored as [re, im], got {x}")
        return complex(float(x[0]), float(x[1]))
    return complex(x)


def matrix_from_json(rows):
    """Complex matrix from a list of rows of JSON numbers."""
    rows = list(rows)
    if len(rows) == 0 or len(rows[0]) == 0:
        raise SamplerConfigError("Error while loading a matrix from JSON: empty matrix")
    ncols = len(rows[0])
    if any(len(row) != ncols for row in rows):
        raise SamplerConfigError("Error while loading a matrix from JSON: rows of different lengths")
    return np.array([[complex_from_json(x) for x in row] for row in rows], dtype=complex)


# --- JSON output ---


def to_serializable(obj):
    """Convert numbers and arrays to plain JSON types. Complex numbers become
    [re, im] pairs."""
    if isinstance(obj, torch.Tensor):
        obj = obj.detach().cpu().numpy()
    if isinstance(obj, np.ndarray):
        return [to_serializable(x) for x in obj.tolist()]
    if isinstance(obj, (complex, np.complexfloating)):
        return [float(obj.real), float(obj.imag)]
    if isinstance(obj, np.integer):
        return int(obj)
    if isinstance(obj, np.floating):
        return float(obj)
    if isinstance(obj, dict):
        return {str(k): to_serializable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [to_serializable(x) for x in obj]
    return obj


def dump_json(obj, path):
    with open(path, "w") as f:
        json.dump(to_serializable(obj), f, indent=2)
