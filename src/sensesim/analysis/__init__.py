"""Numerical core: linear models, discretization, stability and spectra.

Modules such as :mod:`transforms`, :mod:`discretize`, :mod:`stability` and
:mod:`spectrum` operate on NumPy arrays only, so they can be reused from
command-line tools and tests without an engine instance.
"""
