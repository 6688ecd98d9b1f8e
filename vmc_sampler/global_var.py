import os

DEBUG = os.environ.get("VMC_SAMPLER_DEBUG", "0").lower() in ("1", "true", "yes")

# tolerance on |exp(logpsi - logpsi_lookup) - 1|
LOOKUP_TOL = 1e-8


def set_debug(flag):
    """Switch the per-move lookup consistency checks on or off."""
    global DEBUG
    DEBUG = bool(flag)
