import os
import tempfile
import unittest

from solver.search import DEFAULT_POLICY, MAX_SEARCH_DEPTH, SearchLimits
from solver.settings import PROFILES, load_search_settings, profile_policy, save_search_settings


class SettingsTestCase(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.path = os.path.join(self.tmp.name, "search.ini")

    def tearDown(self):
        self.tmp.cleanup()

    def write(self, text):
        with open(self.path, "w", encoding="utf-8") as f:
            f.write(text)

    def test_missing_file_uses_balanced_defaults(self):
        settings = load_search_settings(self.path)
        self.assertEqual("balanced", settings.profile)
        self.assertEqual(SearchLimits(), settings.limits)
        self.assertEqual(DEFAULT_POLICY, settings.policy)

    def test_values_are_read(self):
        self.write(
            "[search]\nprofile = conservative\nmax_depth = 120\nmax_seconds = 2.5\n"
            "max_nodes = 5000\nmax_recycles = none\nbranching_narrow = 4\n"
        )
        settings = load_search_settings(self.path)
        self.assertEqual("conservative", settings.profile)
        self.assertEqual(SearchLimits(max_depth=120, max_seconds=2.5, max_nodes=5000), settings.limits)
        self.assertIsNone(settings.policy.max_recycles)
        self.assertEqual(4, settings.policy.branching_narrow)
        self.assertEqual(PROFILES["conservative"].branching_wide, settings.policy.branching_wide)

    def test_bad_values_fall_back(self):
        self.write(
            "[search]\nprofile = reckless\nmax_depth = 100000\nmax_seconds = -1\n"
            "max_nodes = lots\nmax_recycles = -2\nbranching_wide = 0\n"
        )
        with self.assertLogs("solver.settings", level="WARNING"):
            settings = load_search_settings(self.path)
        self.assertEqual("balanced", settings.profile)
        self.assertEqual(SearchLimits(), settings.limits)
        self.assertEqual(DEFAULT_POLICY, settings.policy)

    def test_unreadable_file_falls_back(self):
        self.write("this is not an ini file")
        with self.assertLogs("solver.settings", level="WARNING"):
            settings = load_search_settings(self.path)
        self.assertEqual("balanced", settings.profile)

    def test_missing_section(self):
        self.write("[other]\nmax_depth = 10\n")
        self.assertEqual(SearchLimits(), load_search_settings(self.path).limits)

    def test_profile_argument_overrides_file(self):
        self.write("[search]\nprofile = conservative\n")
        settings = load_search_settings(self.path, profile="exhaustive")
        self.assertEqual("exhaustive", settings.profile)
        self.assertFalse(settings.policy.limit_branching)

    def test_save_then_load(self):
        self.write("[search]\nprofile = aggressive\nmax_depth = 90\nmax_recycles = 1\n")
        settings = load_search_settings(self.path)
        other = os.path.join(self.tmp.name, "nested", "copy.ini")
        save_search_settings(settings, other)
        self.assertEqual(settings, load_search_settings(other))

    def test_profiles(self):
        exhaustive = PROFILES["exhaustive"]
        self.assertFalse(exhaustive.limit_branching)
        self.assertFalse(exhaustive.skip_probably_bad)
        self.assertFalse(exhaustive.skip_regressive)
        self.assertIsNone(exhaustive.max_recycles)
        self.assertLess(PROFILES["aggressive"].branching_narrow, PROFILES["balanced"].branching_narrow)
        self.assertIs(PROFILES["balanced"], profile_policy(None))
        self.assertIs(PROFILES["balanced"], profile_policy("unknown"))
        self.assertGreater(MAX_SEARCH_DEPTH, SearchLimits().max_depth)


if __name__ == "__main__":
    unittest.main()
