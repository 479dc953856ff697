import os
import pathlib
import sys
import tempfile
import unittest
from unittest import mock

# Ensure src/ is on path for direct test execution
ROOT = pathlib.Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

import numpy as np  # noqa: E402

from sensesim.config.persistence import (  # noqa: E402
    PARAMS_PATH_ENV,
    default_params_path,
    load_parameters_or_default,
    save_parameters,
)
from sensesim.config.runtime import (  # noqa: E402
    SimulatorConfig,
    bode_frequencies,
    config_from_mapping,
    load_config,
)
from sensesim.core.models import Channel  # noqa: E402
from sensesim.sensors.parameters import ParametersSnapshot  # noqa: E402


class SimulatorConfigTest(unittest.TestCase):
    def test_defaults_describe_five_second_window(self):
        cfg = SimulatorConfig()
        self.assertEqual(cfg.samples_per_buffer, 500)
        self.assertEqual(cfg.discretization, "zoh")

    def test_sanitized_clamps_and_falls_back(self):
        cfg = SimulatorConfig(sample_rate_hz=-5.0, peak_count=0, discretization="Euler").sanitized()
        self.assertEqual(cfg.sample_rate_hz, 1.0)
        self.assertEqual(cfg.peak_count, 1)
        self.assertEqual(cfg.discretization, "zoh")

    def test_mapping_prefers_simulator_block(self):
        cfg = config_from_mapping(
            {"simulator": {"sample_rate_hz": 200, "discretization": "TUSTIN"}, "unknown": 1}
        )
        self.assertEqual(cfg.sample_rate_hz, 200.0)
        self.assertEqual(cfg.discretization, "tustin")

    def test_bode_grid_ends_at_nyquist(self):
        freqs = bode_frequencies(SimulatorConfig(bode_points=16))
        self.assertEqual(freqs.size, 16)
        self.assertAlmostEqual(freqs[0], 1.0)
        self.assertAlmostEqual(freqs[-1], 50.0)
        self.assertTrue(np.all(np.diff(freqs) > 0))

    def test_load_config_from_yaml(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = pathlib.Path(tmpdir) / "sim.yaml"
            path.write_text("simulator:\n  buffer_seconds: 2\n  peak_count: 3\n", encoding="utf-8")

            cfg = load_config(path)

            self.assertEqual(cfg.samples_per_buffer, 200)
            self.assertEqual(cfg.peak_count, 3)

    def test_load_config_missing_file_uses_defaults(self):
        self.assertEqual(load_config("/nonexistent/sim.yaml"), SimulatorConfig())

    def test_load_config_rejects_non_mapping(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = pathlib.Path(tmpdir) / "sim.yaml"
            path.write_text("- 1\n- 2\n", encoding="utf-8")
            with self.assertRaises(ValueError):
                load_config(path)


class ParameterPersistenceTest(unittest.TestCase):
    def test_env_overrides_default_path(self):
        with mock.patch.dict(os.environ, {PARAMS_PATH_ENV: "/tmp/custom/params.yaml"}):
            self.assertEqual(default_params_path(), pathlib.Path("/tmp/custom/params.yaml"))

    def test_save_then_load_round_trip(self):
        snapshot = ParametersSnapshot()
        snapshot.force.force_offset = 12.5
        snapshot.emg.bandpass_enabled = True
        snapshot.weights[Channel.ORIENTATION] = 0.0
        snapshot.normalize_weights = False

        with tempfile.TemporaryDirectory() as tmpdir:
            path = pathlib.Path(tmpdir) / "nested" / "params.yaml"
            self.assertTrue(save_parameters(path, snapshot))

            restored = load_parameters_or_default(path)

        self.assertEqual(restored, snapshot)

    def test_missing_file_yields_defaults(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            restored = load_parameters_or_default(pathlib.Path(tmpdir) / "absent.yaml")
        self.assertEqual(restored, ParametersSnapshot())

    def test_malformed_file_yields_defaults(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = pathlib.Path(tmpdir) / "params.yaml"
            path.write_text("force: [unclosed\n", encoding="utf-8")
            with self.assertLogs("sensesim.config.persistence", level="WARNING"):
                restored = load_parameters_or_default(path)
        self.assertEqual(restored, ParametersSnapshot())

    def test_save_failure_returns_false(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            blocker = pathlib.Path(tmpdir) / "file"
            blocker.write_text("x", encoding="utf-8")
            with self.assertLogs("sensesim.config.persistence", level="WARNING"):
                ok = save_parameters(blocker / "params.yaml", ParametersSnapshot())
        self.assertFalse(ok)


if __name__ == "__main__":
    unittest.main()
