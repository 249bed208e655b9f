"""Setup script for assert-time."""

from setuptools import find_packages, setup

setup(
    name="assert-time",
    version="0.1.0",
    description="Timestamp tolerance assertions with calibrated run-after jitter",
    package_dir={"": "src"},
    packages=find_packages("src"),
    python_requires=">=3.10",
    extras_require={"test": ["pytest>=7"]},
)
