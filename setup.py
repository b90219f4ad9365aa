#!/usr/bin/env python3
"""
Setup script for the pointmerge point cloud registration package
"""

from setuptools import setup, find_packages

setup(
    name="pointmerge",
    version="1.0.0",
    description="Rigid point cloud registration (Umeyama/ICP) and multi-view merging",
    author="Thorn",
    packages=find_packages(include=["pointmerge", "pointmerge.*"]),
    package_data={"pointmerge": ["defaults/*.yaml"]},
    include_package_data=True,
    python_requires=">=3.8",
    install_requires=[
        "numpy>=1.19.0",
        "scipy>=1.5.0",
        "PyYAML>=5.1",
        "scikit-learn>=0.24",
    ],
    extras_require={
        "open3d": ["open3d>=0.15.0"],
        "test": ["pytest>=6.0"],
    },
    entry_points={
        "console_scripts": [
            "pointmerge=pointmerge.__main__:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Intended Audience :: Science/Research",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Topic :: Scientific/Engineering",
    ],
)
