"""Developer tools: timing hooks, the ``sensesim-report`` CLI and figure export.

Nothing here is imported by the engine except :mod:`debug`; :mod:`report` and
:mod:`plotter` pull in the full stack (and Matplotlib) only when used.
"""
