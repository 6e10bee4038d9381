from setuptools import setup, find_packages

setup(
    name="convergence-pick-engine",
    version="0.1.0",
    description="Point-in-time signal convergence pick engine with walk-forward backtesting",
    author="Ben Rosen",
    packages=find_packages(include=["pickengine", "pickengine.*"]),
    install_requires=[
        "numpy>=1.22.4",
        "pandas>=1.5.3",
        "pytz>=2022.7",
        "scipy>=1.10.0",
        "scikit-learn>=1.3.0",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    python_requires=">=3.8",
    entry_points={
        "console_scripts": [
            "pick-engine=pickengine.main:main",
        ],
    },
)
