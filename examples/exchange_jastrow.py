import os
os.environ["OPENBLAS_NUM_THREADS"] = '1'
os.environ['MKL_NUM_THREADS'] = '1'
os.environ["OMP_NUM_THREADS"] = '1'

import torch

from vmc_sampler.graph import graph_from_pars
from vmc_sampler.hamiltonian import Ising
from vmc_sampler.model import Jastrow
from vmc_sampler.parallel import WorkerContext
from vmc_sampler.sampler import sampler_from_pars
from vmc_sampler.driver import SamplingDriver

ctx = WorkerContext.world()

pars = {
    "Graph": {"Name": "Hypercube", "L": 4, "Dimension": 2, "Pbc": True},
    "Hamiltonian": {"h": 0.5, "J": 1.0},
    "Sampler": {"Name": "MetropolisExchange", "Dmax": 2, "Seed": 7},
}

graph = graph_from_pars(pars)
H = Ising.from_pars(graph, pars, ctx=ctx)
psi = Jastrow(H.hilbert, sigma=0.2, param_dtype=torch.float64, seed=0)
sampler = sampler_from_pars(graph, psi, pars, ctx=ctx)

# start from the zero-magnetization sector, which exchange moves preserve
sampler.current_config = [(-1.0) ** i for i in range(graph.n_sites)]

driver = SamplingDriver(H, sampler, n_samples=1000, n_discard=100)

if __name__ == "__main__":
    driver.run(n_iter=2, pgbar=True)
