import re
from setuptools import setup

# Read the version without importing the package and its dependencies
with open("pysand/__init__.py", "r") as fh:
    __version__ = re.search(r'^__version__ = "([^"]+)"', fh.read(), re.M).group(1)

with open("README.md", "r") as fh:
    long_description = fh.read()

setup(
      name='pysand',
      version=__version__,
      description='Simultaneous analysis and design topology optimization with a primal-dual interior-point method',
      long_description=long_description,
      long_description_content_type="text/markdown",
      keywords='Topology Optimization SAND Interior Point Watchdog Structural Design',
      packages=['pysand', 'pysand.common', 'pysand.solvers'],
      install_requires=['numpy', 'scipy>=1.7', 'matplotlib'],
      extras_require={
            'test': ['pytest'],
            'umfpack': ['scikit-umfpack'],
      },
      classifiers=[
            "Programming Language :: Python :: 3",
            "Operating System :: OS Independent",
            "License :: OSI Approved :: MIT License",
            "Topic :: Scientific/Engineering"
      ],
)
