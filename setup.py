import sys
from os import path
from setuptools import setup, find_packages

if sys.version_info < (3,6):
    sys.exit("Sorry, only Python >= 3.6 is supported")
here = path.abspath(path.dirname(__file__))

setup(
    name='mipnn',
    version='0.0.1',
    description='Mixed-integer encodings of ReLU networks: bound tightening, adversarial examples, perturbations',
    license='MIT',
    classifiers=[
        'Development Status :: 1 - Planning',
        'Intended Audience :: Science/Research',
        'License :: OSI Approved :: MIT License',
        'Programming Language :: Python :: 3.6',
    ],
    packages=find_packages(exclude=['tests']),
    install_requires=['numpy', 'torch', 'pandas', 'gurobipy'],
    extras_require={
        'dev': ['ipython', 'ipdb'],
        'test': ['pytest'],
    },
)
