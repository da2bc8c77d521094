from __future__ import annotations

import json
import os
import tempfile
import unittest

from typer.testing import CliRunner

import tw_cli
from tcx_samples import one_hz_ride, tcx_document, trackpoint_xml


class TestWindowsCommand(unittest.TestCase):
    def setUp(self) -> None:
        self.runner = CliRunner()
        self.app = tw_cli._build_typer_app()
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = self._tmp.name
        self.ride = self._write("ride.tcx", one_hz_ride([0.0, 3.6, 7.2, 10.8, 14.4], [100.0, 101.0, 103.0, 103.0, 102.0]))

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _write(self, name: str, text: str) -> str:
        path = os.path.join(self.tmp, name)
        with open(path, "w", encoding="utf-8") as fh:
            fh.write(text)
        return path

    def _read_lines(self, path: str):
        with open(path, encoding="utf-8") as fh:
            return fh.read().splitlines()

    def test_duration_windows_to_file(self) -> None:
        out = os.path.join(self.tmp, "windows.csv")
        result = self.runner.invoke(self.app, ["windows", self.ride, "-t", "3", "-o", out])
        self.assertEqual(result.exit_code, 0, result.output)
        lines = self._read_lines(out)
        self.assertEqual(len(lines), 2)
        first = [f.strip() for f in lines[0].split(";")]
        self.assertEqual(first[:4], ["200.00", "140.00", "3", "0.011"])
        self.assertEqual(first[5], "3.0")

    def test_pretty_to_stdout(self) -> None:
        result = self.runner.invoke(self.app, ["windows", self.ride, "--length", "2", "--pretty"])
        self.assertEqual(result.exit_code, 0, result.output)
        pretty = [line for line in result.output.splitlines() if "bpm for" in line]
        self.assertEqual(len(pretty), 2)

    def test_count_and_header(self) -> None:
        out = os.path.join(self.tmp, "windows.csv")
        result = self.runner.invoke(self.app, ["windows", self.ride, "--count", "4", "--header", "-o", out])
        self.assertEqual(result.exit_code, 0, result.output)
        lines = self._read_lines(out)
        self.assertTrue(lines[0].startswith("power_w;"))
        self.assertEqual(len(lines), 5)

    def test_distance_grouping_requires_length(self) -> None:
        result = self.runner.invoke(self.app, ["windows", self.ride, "--by", "distance"])
        self.assertEqual(result.exit_code, 2)
        out = os.path.join(self.tmp, "by_distance.csv")
        result = self.runner.invoke(self.app, ["windows", self.ride, "--by", "distance", "-t", "7.2", "-o", out])
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertEqual(len(self._read_lines(out)), 2)

    def test_epsilon_option(self) -> None:
        path = self._write("sliver.tcx", one_hz_ride([0.0, 1000.00005]))
        counts = {}
        for eps in ("1e-6", "0"):
            out = os.path.join(self.tmp, f"eps_{eps}.csv")
            result = self.runner.invoke(
                self.app, ["windows", path, "--by", "distance", "-t", "100", f"--epsilon={eps}", "-o", out]
            )
            self.assertEqual(result.exit_code, 0, result.output)
            counts[eps] = len(self._read_lines(out))
        self.assertEqual(counts, {"1e-6": 10, "0": 11})

        result = self.runner.invoke(self.app, ["windows", path, "--by", "distance", "-t", "100", "--epsilon=-1"])
        self.assertEqual(result.exit_code, 2)

    def test_length_and_count_are_exclusive(self) -> None:
        result = self.runner.invoke(self.app, ["windows", self.ride, "-t", "3", "-n", "2"])
        self.assertEqual(result.exit_code, 2)

    def test_invalid_length_is_an_error(self) -> None:
        result = self.runner.invoke(self.app, ["windows", self.ride, "-t", "0"])
        self.assertEqual(result.exit_code, 2)

    def test_missing_file(self) -> None:
        result = self.runner.invoke(self.app, ["windows", os.path.join(self.tmp, "nope.tcx")])
        self.assertEqual(result.exit_code, 2)

    def test_no_usable_trackpoints(self) -> None:
        path = self._write("bare.tcx", tcx_document([[trackpoint_xml("2023-05-01T10:00:00Z", hr=90)]]))
        result = self.runner.invoke(self.app, ["windows", path])
        self.assertEqual(result.exit_code, 2)

    def test_too_short_for_a_window(self) -> None:
        path = self._write("one.tcx", one_hz_ride([0.0]))
        result = self.runner.invoke(self.app, ["windows", path])
        self.assertEqual(result.exit_code, 3)


class TestDumpCommand(unittest.TestCase):
    def test_json_dump_keeps_every_trackpoint(self) -> None:
        runner = CliRunner()
        app = tw_cli._build_typer_app()
        with tempfile.TemporaryDirectory() as tmp:
            src = os.path.join(tmp, "ride.tcx")
            with open(src, "w", encoding="utf-8") as fh:
                fh.write(tcx_document([[
                    trackpoint_xml("2023-05-01T10:00:00Z", hr=90),
                    trackpoint_xml("2023-05-01T10:00:01Z", alt=5.0, dist=2.0),
                ]]))
            out = os.path.join(tmp, "dump.json")
            result = runner.invoke(app, ["dump", src, "--format", "json", "-o", out])
            self.assertEqual(result.exit_code, 0, result.output)
            with open(out, encoding="utf-8") as fh:
                rows = json.load(fh)["trackpoints"]
        self.assertEqual(len(rows), 2)
        self.assertEqual(rows[0]["heartrate"], 90.0)

    def test_unknown_format(self) -> None:
        runner = CliRunner()
        app = tw_cli._build_typer_app()
        result = runner.invoke(app, ["dump", "ride.tcx", "--format", "xml"])
        self.assertEqual(result.exit_code, 2)


class TestLoaderDispatch(unittest.TestCase):
    def test_fit_suffix(self) -> None:
        self.assertTrue(tw_cli._is_fit_path("/data/Ride.FIT"))
        self.assertFalse(tw_cli._is_fit_path("/data/ride.tcx"))


if __name__ == "__main__":
    unittest.main()
