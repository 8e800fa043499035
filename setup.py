#!/usr/bin/env python
"""argthread setup.py docstring"""

from setuptools import setup, find_packages


def setup_package():

    metadata = dict(
            name = 'argthread',
            version = '0.1.0',
            maintainer = 'argthread developers',
            description = 'thread sequences into ancestral recombination graphs',
            long_description = (
                'Emission probabilities, forward algorithm and traceback '
                'of the HMM used to thread a sequence into the local trees '
                'of an ancestral recombination graph.'),
            license = 'BSD',
            platforms = ['Windows', 'Linux', 'Solaris', 'Mac OS-X', 'Unix'],
            packages = find_packages(),
            python_requires = '>=3.8',
            install_requires = [
                'numpy',
                'scipy',
                'networkx',
                ],
            extras_require = {
                'test': ['pytest'],
                },
            )

    setup(**metadata)

if __name__ == '__main__':
    setup_package()
