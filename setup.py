from setuptools import find_packages, setup

package_name = "se_sync"

setup(
    name="se-sync",
    version="0.1.0",
    packages=find_packages(exclude=["test"]),
    data_files=[
        (
            "share/" + package_name + "/config",
            [
                "config/sesync_default.yaml",
            ],
        ),
    ],
    install_requires=[
        "setuptools",
        "numpy",
        "scipy",
        "jax",
        "pyyaml",
        "pydantic>=2",
        "threadpoolctl",
    ],
    extras_require={"test": ["pytest"]},
    zip_safe=True,
    description="SE-Sync - certifiably correct pose-graph optimization via the Riemannian Staircase",
    license="Apache-2.0",
    tests_require=["pytest"],
)
