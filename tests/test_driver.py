import json

import numpy as np
import pytest

from vmc_sampler.driver import SamplingDriver
from vmc_sampler.errors import SamplerConfigError
from vmc_sampler.graph import graph_from_pars
from vmc_sampler.hamiltonian import Ising
from vmc_sampler.model import RbmSpin
from vmc_sampler.observables import exact_expectation
from vmc_sampler.parallel import WorkerContext
from vmc_sampler.sampler import MetropolisExchange, MetropolisLocalPt, sampler_from_pars
from vmc_sampler.utils import (
    closest_divisible,
    complex_from_json,
    dump_json,
    field_or_default_val,
    field_val,
    load_pars,
    matrix_from_json,
    samples_per_worker,
)


def test_closest_divisible():
    assert closest_divisible(10, 4) == 8
    assert closest_divisible(11, 4) == 12
    assert closest_divisible(12, 4) == 12


def test_samples_per_worker():
    assert samples_per_worker(1000, 1) == 1000
    assert samples_per_worker(1000, 3) == 333
    assert samples_per_worker(2, 4) == 1


def test_parameter_fields():
    pars = {"Sampler": {"Name": "MetropolisLocal"}}
    assert field_val(pars, "Sampler") == {"Name": "MetropolisLocal"}
    assert field_or_default_val(pars["Sampler"], "Seed", 3) == 3
    with pytest.raises(SamplerConfigError, match="Nreplicas"):
        field_val(pars["Sampler"], "Nreplicas", "Sampler")


def test_json_round_trip(tmp_path):
    path = tmp_path / "stats.json"
    dump_json({"mean": [1 + 2j], "acceptance": np.array([0.5, 0.25]), "n": np.int64(3)}, path)
    data = load_pars(path)
    assert data == {"mean": [[1.0, 2.0]], "acceptance": [0.5, 0.25], "n": 3}


def test_sampler_from_pars(ring4, rbm4):
    s = sampler_from_pars(ring4, rbm4, {"Sampler": {"Name": "MetropolisLocal", "Seed": 1}})
    assert isinstance(s, MetropolisLocalPt) and s.nreplicas == 1

    s = sampler_from_pars(ring4, rbm4, {"Sampler": {"Name": "MetropolisLocalPt", "Nreplicas": 3}})
    assert s.nreplicas == 3

    s = sampler_from_pars(ring4, rbm4, {"Sampler": {"Name": "MetropolisExchange", "Dmax": 2}})
    assert isinstance(s, MetropolisExchange) and s.dmax == 2

    with pytest.raises(SamplerConfigError):
        sampler_from_pars(ring4, rbm4, {"Sampler": {"Name": "Gibbs"}})
    with pytest.raises(SamplerConfigError):
        sampler_from_pars(ring4, rbm4, {"Sampler": {"Name": "MetropolisLocalPt"}})


def _driver(n_samples=400):
    graph = graph_from_pars({"Graph": {"Name": "Hypercube", "L": 4}})
    H = Ising(graph, h=1.0)
    psi = RbmSpin(H.hilbert, alpha=1, sigma=0.3, seed=0)
    sampler = MetropolisLocalPt(psi, nreplicas=2, seed=0)
    return H, psi, SamplingDriver(H, sampler, n_samples=n_samples, n_discard=20)


def test_driver_run_writes_statistics(tmp_path):
    H, psi, driver = _driver()
    out = tmp_path / "energy.json"
    stats = driver.run(n_iter=2, out=str(out))

    assert driver.step_count == 2
    assert len(stats["mean"]) == 2
    assert stats["chain_length"] == 400

    data = json.loads(out.read_text())
    assert set(data) == {"chain_length", "mean", "error", "variance", "acceptance"}
    assert len(data["mean"]) == 2 and len(data["mean"][0]) == 2
    assert len(data["acceptance"][0]) == 4

    exact = exact_expectation(H, psi).real
    assert abs(stats["mean"][-1].real - exact) < 0.5


def test_driver_splits_samples_across_workers():
    graph = graph_from_pars({"Graph": {"Name": "Hypercube", "L": 4}})
    H = Ising(graph, h=1.0)
    psi = RbmSpin(H.hilbert, alpha=1, seed=0)
    ctx = WorkerContext(rank=1, size=4, broadcast=lambda values: [1, 2, 3, 4])
    driver = SamplingDriver(H, MetropolisLocalPt(psi, ctx=ctx), n_samples=1000)
    assert driver.chain_length == 250
    assert driver._stats_path("out.json") == "out_rank1.json"


def test_sample_statistics(ring4, rbm4):
    H = Ising(ring4, h=1.0)
    sampler = MetropolisLocalPt(rbm4, seed=3)
    stats = sampler.sample(H, chain_length=50, n_discard=10)
    assert stats["n_samples"] == 50
    assert stats["variance"] >= 0
    assert stats["error"] == pytest.approx(np.sqrt(stats["variance"] / 50))
    assert len(stats["chain_means"]) == 2
    assert np.mean(stats["chain_means"]) == pytest.approx(stats["mean"])
    with pytest.raises(ValueError):
        sampler.sample(H, chain_length=0)


def test_complex_json_decoding(tmp_path):
    assert complex_from_json([1.5, -2]) == 1.5 - 2j
    assert complex_from_json(3) == 3 + 0j
    with pytest.raises(SamplerConfigError):
        complex_from_json([1, 2, 3])

    path = tmp_path / "op.json"
    op = np.array([[1.0, 2j], [-2j, 0.5]])
    dump_json({"Operators": [op]}, path)
    loaded = matrix_from_json(load_pars(path)["Operators"][0])
    assert loaded.dtype == complex
    assert np.array_equal(loaded, op)

    with pytest.raises(SamplerConfigError):
        matrix_from_json([[1, 0], [0]])
    with pytest.raises(SamplerConfigError):
        matrix_from_json([[]])
