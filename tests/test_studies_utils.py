import unittest

import numpy as np
import pandas as pd

from structural_transient.studies import _parse_path_tokens, extract_metrics, get_by_path, set_by_path


class TestPathUtils(unittest.TestCase):
    def test_parse_tokens(self):
        self.assertEqual(_parse_path_tokens("case_name"), [("case_name", None)])
        self.assertEqual(_parse_path_tokens("weights[0]"), [("weights", 0)])
        self.assertEqual(
            _parse_path_tokens("response.weights[2]"), [("response", None), ("weights", 2)]
        )

    def test_get_set_roundtrip(self):
        cfg = {"a": {"b": [10, 20, 30]}, "case_name": "x"}
        self.assertEqual(get_by_path(cfg, "a.b[1]"), 20)
        cfg2 = set_by_path(cfg, "a.b[1]", 99)
        self.assertEqual(get_by_path(cfg2, "a.b[1]"), 99)
        # original unchanged
        self.assertEqual(get_by_path(cfg, "a.b[1]"), 20)

    def test_invalid_token(self):
        with self.assertRaises(ValueError):
            _parse_path_tokens("bad-token")

    def test_missing_key(self):
        with self.assertRaises(KeyError):
            get_by_path({"time": {}}, "time.dt")

    def test_index_out_of_range(self):
        with self.assertRaises(IndexError):
            set_by_path({"w": [1.0]}, "w[3]", 2.0)


class TestMetrics(unittest.TestCase):
    def test_extract_metrics(self):
        df = pd.DataFrame(
            {
                "Time_s": [0.0, 0.5, 1.0],
                "Response": [0.0, -2.0, 1.0],
                "E_total_J": [1.0, 1.1, 0.9],
            }
        )
        m = extract_metrics(df)
        self.assertEqual(m["t_final_s"], 1.0)
        self.assertEqual(m["peak_abs_response"], 2.0)
        self.assertEqual(m["final_response"], 1.0)
        self.assertAlmostEqual(m["energy_drift_rel"], 0.1)

    def test_metrics_without_energy(self):
        df = pd.DataFrame({"Time_s": [0.0, 1.0], "Response": [1.0, 2.0]})
        self.assertTrue(np.isnan(extract_metrics(df)["energy_drift_rel"]))


if __name__ == "__main__":
    unittest.main()
