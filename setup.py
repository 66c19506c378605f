"""
Setup script for DrunkardMob random walk package.
"""

from setuptools import setup, find_packages

setup(
    name="drunkardmob",
    version="1.0.0",
    description="Monte-Carlo random walks with per-source landing distributions",
    author="DrunkardMob Team",
    packages=find_packages(exclude=["tests", "tests.*"]),
    package_data={"config": ["default.yaml"]},
    python_requires=">=3.8",
    install_requires=[
        "torch>=2.0.0",
        "networkx>=3.0",
        "numpy>=1.23.0",
        "pyyaml>=6.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.3.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "drunkardmob-run=scripts.run_walks:main",
            "drunkardmob-generate=scripts.generate_graph:main",
        ],
    },
)
