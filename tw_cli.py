from __future__ import annotations

# CLI orchestration for tcxwin. Extraction lives in tw_extract / tw_fit, the
# windowing fold in tw_windows, formatting in tw_output and plotting in
# tw_plotting.

import logging
import os
import time
from typing import Callable, List, Optional

import typer

from tw_errors import EmptyInput, TcxWindowError
from tw_extract import Trackpoint, has_altitude_and_distance, load_tcx
from tw_fit import load_fit
from tw_output import (
    dump_trackpoints_csv,
    dump_trackpoints_json,
    summarize_totals,
    write_summaries,
)
from tw_plotting import plot_windows
from tw_windows import (
    DEFAULT_QDH_LEN_M,
    DEFAULT_WINDOW_S,
    TRAILING_EPSILON,
    GroupingConfig,
    aggregate_windows,
)


class _StageProfiler:
    def __init__(self, enabled: bool) -> None:
        self.enabled = enabled
        self._last = time.perf_counter()

    def lap(self, label: str) -> None:
        if not self.enabled:
            return
        now = time.perf_counter()
        logging.info("Profile %-18s %.3fs", label, now - self._last)
        self._last = now


def _setup_logging(verbose: bool, log_file: Optional[str] = None) -> None:
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file, mode="w"))
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
        handlers=handlers,
    )
    # matplotlib font lookup floods --verbose output
    logging.getLogger("matplotlib").setLevel(logging.WARNING)


def _is_fit_path(path: str) -> bool:
    return os.path.splitext(path)[1].lower() == ".fit"


def _load_trackpoints(path: str, keep: Optional[Callable[[Trackpoint], bool]] = None) -> List[Trackpoint]:
    logging.info("Reading: %s", path)
    if _is_fit_path(path):
        return load_fit(path, keep=keep)
    return load_tcx(path, keep=keep)


def _run_windows(
    path: str,
    config: GroupingConfig,
    qdh_len: float = DEFAULT_QDH_LEN_M,
    pretty: bool = False,
    output: Optional[str] = None,
    header: bool = False,
    png: Optional[str] = None,
    epsilon: float = TRAILING_EPSILON,
    verbose: bool = False,
    log_file: Optional[str] = None,
    profile: bool = False,
) -> int:
    _setup_logging(verbose, log_file=log_file)
    profiler = _StageProfiler(profile)
    try:
        points = _load_trackpoints(path, keep=has_altitude_and_distance)
        profiler.lap("extract")
        logging.info("Trackpoints with altitude and distance: %d", len(points))
        if not points:
            raise EmptyInput(f"No trackpoints with altitude and distance in {path}")
        summaries = aggregate_windows(points, config, qdh_len=qdh_len, epsilon=epsilon)
        profiler.lap("aggregate")
    except (TcxWindowError, OSError) as exc:
        logging.error(str(exc))
        return 2

    if not summaries:
        logging.error("Activity too short for a single window; nothing to report.")
        return 3

    try:
        write_summaries(summaries, pretty=pretty, output=output, header=header)
        if output:
            logging.info("Wrote: %s", output)
        profiler.lap("write")
    except OSError as exc:
        logging.error(f"Failed to write summaries: {exc}")
        return 2

    totals = summarize_totals(summaries)
    logging.info(
        "%d window(s): %.0fs, %.3fkm, +%.0fm, QDH %.1f",
        totals["windows"],
        totals["duration_s"],
        totals["distance_m"] / 1000.0,
        totals["elevation_gain_m"],
        totals["qdh"],
    )

    if png:
        try:
            plot_windows(summaries, png, title=os.path.basename(path))
            profiler.lap("plot")
        except (RuntimeError, OSError) as exc:
            logging.error(f"Failed to plot: {exc}")
            return 2
    return 0


def _run_dump(
    path: str,
    output: str,
    fmt: str = "csv",
    verbose: bool = False,
    log_file: Optional[str] = None,
) -> int:
    _setup_logging(verbose, log_file=log_file)
    try:
        points = _load_trackpoints(path)
    except (TcxWindowError, OSError) as exc:
        logging.error(str(exc))
        return 2
    try:
        if fmt == "json":
            dump_trackpoints_json(points, output)
        else:
            dump_trackpoints_csv(points, output)
    except OSError as exc:
        logging.error(f"Failed to write dump: {exc}")
        return 2
    logging.info("Wrote %d trackpoint(s): %s", len(points), output)
    return 0


def _build_typer_app():
    app = typer.Typer(add_completion=False, help="Interval summaries (power, HR, gain, QDH) from TCX/FIT activities.")

    @app.command()
    def windows(
        path: str = typer.Argument(..., help="Input .tcx (or .fit) file"),
        by: str = typer.Option("duration", "--by", "-b", help="Grouping metric: duration|distance"),
        length: Optional[float] = typer.Option(
            None,
            "--length",
            "-t",
            help=f"Window length in seconds or metres (default {DEFAULT_WINDOW_S} when grouping by duration)",
        ),
        count: Optional[int] = typer.Option(None, "--count", "-n", help="Split the activity into N equal windows"),
        qdh_len: float = typer.Option(DEFAULT_QDH_LEN_M, "--qdh-len", help="QDH bucket length in metres (0 = flush every sample)"),
        epsilon: float = typer.Option(TRAILING_EPSILON, "--epsilon", help="Drop a trailing window holding less than this fraction of a window"),
        pretty: bool = typer.Option(False, "--pretty", "-p", help="Print human readable output"),
        header: bool = typer.Option(False, "--header/--no-header", help="Emit a header line for delimited output"),
        output: Optional[str] = typer.Option(None, "--output", "-o", help="Write summaries to this path instead of stdout"),
        png: Optional[str] = typer.Option(None, "--png", help="Optional output PNG path for a per-window chart"),
        verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
        log_file: Optional[str] = typer.Option(None, "--log-file", help="Optional log file path for diagnostics"),
        profile: bool = typer.Option(False, "--profile/--no-profile", help="Log stage timings"),
    ) -> None:
        """Split an activity into windows and print one summary line per window."""
        if length is not None and count is not None:
            raise typer.BadParameter("Use either --length or --count, not both.")
        by_norm = by.lower()
        if by_norm not in ("duration", "distance"):
            raise typer.BadParameter("--by must be 'duration' or 'distance'")
        if count is not None:
            config = GroupingConfig.parse(by_norm, "count", count)
        else:
            if length is None:
                if by_norm != "duration":
                    raise typer.BadParameter("--length (metres) is required when grouping by distance.")
                length = float(DEFAULT_WINDOW_S)
            config = GroupingConfig.parse(by_norm, "length", length)
        code = _run_windows(
            path,
            config,
            qdh_len=qdh_len,
            pretty=pretty,
            output=output,
            header=header,
            png=png,
            epsilon=epsilon,
            verbose=verbose,
            log_file=log_file,
            profile=profile,
        )
        if code != 0:
            raise typer.Exit(code)

    @app.command()
    def dump(
        path: str = typer.Argument(..., help="Input .tcx (or .fit) file"),
        output: str = typer.Option("trackpoints.csv", "--output", "-o", help="Output path"),
        fmt: str = typer.Option("csv", "--format", "-f", help="Dump format: csv|json"),
        verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
        log_file: Optional[str] = typer.Option(None, "--log-file", help="Optional log file path"),
    ) -> None:
        """Dump every extracted trackpoint with full precision (no windowing)."""
        fmt_norm = fmt.lower()
        if fmt_norm not in ("csv", "json"):
            raise typer.BadParameter("--format must be 'csv' or 'json'")
        code = _run_dump(path, output, fmt=fmt_norm, verbose=verbose, log_file=log_file)
        if code != 0:
            raise typer.Exit(code)

    return app


def main_cli() -> int:
    app = _build_typer_app()
    app()
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main_cli())
