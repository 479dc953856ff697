"""Channel parameter sets and their deterministic waveform generators.

:mod:`parameters` defines the clamped, observable per-channel parameter sets,
the snapshot record that gets persisted and the named run presets.
:mod:`waveforms` turns a parameter set plus a time axis into samples.
"""
