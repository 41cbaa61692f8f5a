#!/usr/bin/env python
from setuptools import setup, find_packages

setup(
    name="cmip6_pxn",
    version="0.1.0",
    description="Extreme precipitation and ENSO index diagnostics for CMIP6 large ensembles",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    author="Roberto Suarez",
    author_email="roberto.suarez.science@gmail.com",
    url="https://github.com/rob-ds/cmip6_pxn",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    python_requires=">=3.10",
    install_requires=[
        "numpy",
        "scipy",
        "pandas",
        "xarray",
        "dask",
        "netcdf4",
        "cftime",
        "pymannkendall",
    ],
    extras_require={
        "test": [
            "pytest",
        ],
    },
    entry_points={
        "console_scripts": [
            "cmip6_pxn_run=cmip6_pxn.cli.run_pipeline:main",
            "cmip6_pxn_export=cmip6_pxn.cli.export_tables:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Science/Research",
        "Topic :: Scientific/Engineering :: Atmospheric Science",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
    keywords="climate CMIP6 extremes precipitation percentiles ENSO ONI ensemble",
)
