class SamplerConfigError(ValueError):
    """Malformed or inconsistent setup detected while building a sampler,
    a Hilbert space, a graph or a worker context."""


class LookupConsistencyError(RuntimeError):
    """A look-up table no longer agrees with the configuration it belongs to."""
