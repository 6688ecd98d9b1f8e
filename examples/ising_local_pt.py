import os
os.environ["OPENBLAS_NUM_THREADS"] = '1'
os.environ['MKL_NUM_THREADS'] = '1'
os.environ["OMP_NUM_THREADS"] = '1'

# torch
import torch

from vmc_sampler.graph import Hypercube
from vmc_sampler.hamiltonian import Ising
from vmc_sampler.model import RbmSpin
from vmc_sampler.observables import exact_expectation
from vmc_sampler.parallel import WorkerContext
from vmc_sampler.sampler import MetropolisLocalPt
from vmc_sampler.driver import SamplingDriver

# run with `mpirun -np 4 python ising_local_pt.py`, every rank samples its own chain
ctx = WorkerContext.world()

"""Define the Hamiltonian"""
L = 8
J = 1.0
h = 1.0
graph = Hypercube(L, ndim=1, pbc=True)
H = Ising(graph, h, J=J, ctx=ctx)

"""Wavefunction, identical on every rank"""
psi = RbmSpin(H.hilbert, alpha=2, sigma=0.1, param_dtype=torch.float64, seed=1234)

"""Sampler: 4 replicas, seeds distributed from rank 0"""
sampler = MetropolisLocalPt(psi, nreplicas=4, ctx=ctx, seed=42)

driver = SamplingDriver(H, sampler, n_samples=2000, n_discard=200)

if __name__ == "__main__":
    os.makedirs('./data', exist_ok=True)
    stats = driver.run(n_iter=3, out=f'./data/ising_L={L}_h={h}_pt.json', pgbar=True)
    if ctx.is_root:
        print('Exact energy of the RBM state:', exact_expectation(H, psi))
