from setuptools import setup, find_packages

setup(
    name="vmc_sampler",
    version="0.1.0",
    description="Metropolis samplers with parallel tempering and site exchanges for variational Monte Carlo",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    classifiers=[
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    keywords="variational monte carlo metropolis parallel tempering torch",
    packages=find_packages(exclude=["tests", "tests.*", "examples", "examples.*"]),
    install_requires=[
        "autoray",
        "mpi4py",
        "numpy",
        "quimb",
        "scipy",
        "torch",
        "tqdm",
    ],
    extras_require={
        "test": ["pytest"],
    },
    include_package_data=True,
)
