"""CLI entry point and orchestration for cdnspeed."""

from __future__ import annotations

import asyncio
import sys
from typing import Optional

import click

from cdnspeed import __version__
from cdnspeed.config import (
    DEFAULT_DOWNLOAD_SECONDS,
    DEFAULT_IP_FILE,
    DEFAULT_MAX_CANDIDATES,
    DEFAULT_MAX_DELAY_MS,
    DEFAULT_MAX_LOSS_RATE,
    DEFAULT_MIN_DELAY_MS,
    DEFAULT_MIN_SPEED,
    DEFAULT_OUTPUT,
    DEFAULT_PING_TIMES,
    DEFAULT_PORT,
    DEFAULT_PRINT_NUM,
    DEFAULT_ROUTINES,
    DEFAULT_TEST_COUNT,
    DEFAULT_URL,
    V4_PRESETS,
    V6_PRESETS,
)
from cdnspeed.models import ScanConfig, ScanResult
from cdnspeed.sampler import RangeSpecError, parse_quota


def _parse_codes(value: str) -> tuple[int, ...]:
    codes = []
    for part in value.split(","):
        part = part.strip()
        if not part:
            continue
        if not part.isdigit():
            raise click.BadParameter(f"not a status code: {part!r}", param_hint="--httping-code")
        codes.append(int(part))
    return tuple(codes)


def _parse_colos(value: str) -> frozenset[str]:
    return frozenset(c.strip().upper() for c in value.split(",") if c.strip())


def resolve_quota(explicit: str, preset: Optional[str], version: int) -> str:
    """Combine an explicit quota with a preset flag.

    The preset applies unless the explicit quota asks for fewer addresses.
    """
    if preset is None:
        return explicit
    if explicit and parse_quota(explicit, version) < parse_quota(preset, version):
        return explicit
    return preset


@click.command()
@click.option("-n", "--routines", default=DEFAULT_ROUTINES, help="Latency test concurrency (max 1000)", show_default=True)
@click.option("-t", "--ping-times", default=DEFAULT_PING_TIMES, help="Latency attempts per address", show_default=True)
@click.option("--dn", "--test-count", "test_count", default=DEFAULT_TEST_COUNT, help="Addresses to download-test", show_default=True)
@click.option("--dt", "--download-time", "download_time", default=DEFAULT_DOWNLOAD_SECONDS, help="Max seconds per download test", show_default=True)
@click.option("--tp", "--port", "port", default=DEFAULT_PORT, help="Port for latency and download tests", show_default=True)
@click.option("--url", default=DEFAULT_URL, help="URL for HTTP probing and download tests", show_default=True)
@click.option("--httping", is_flag=True, help="Probe latency over HTTP instead of TCP")
@click.option("--httping-code", "httping_code", default="", help="Accepted status codes, comma-separated [default: 200,301,302]")
@click.option("--colo", "--cfcolo", "colo", default="", help="Accepted datacenter codes, comma-separated (e.g. HKG,NRT,LAX)")
@click.option("--show-colo", "--aprt", "show_colo", is_flag=True, help="Report datacenter codes in TCP mode too")
@click.option("--tl", "--max-delay", "max_delay", default=DEFAULT_MAX_DELAY_MS, help="Max average delay in ms", show_default=True)
@click.option("--tll", "--min-delay", "min_delay", default=DEFAULT_MIN_DELAY_MS, help="Min average delay in ms", show_default=True)
@click.option("--tlr", "--max-loss", "max_loss", default=DEFAULT_MAX_LOSS_RATE, help="Max loss rate (0.00-1.00)", show_default=True)
@click.option("--sl", "--min-speed", "min_speed", default=DEFAULT_MIN_SPEED, help="Min download speed in MB/s", show_default=True)
@click.option("-p", "--print-num", default=DEFAULT_PRINT_NUM, help="Results to print (0 prints none)", show_default=True)
@click.option("-f", "--file", "ip_file", default=DEFAULT_IP_FILE, help="File with one range per line", show_default=True)
@click.option("--ip", "ip_text", default="", help="Ranges inline, comma-separated (overrides --file)")
@click.option("-o", "--output", default=DEFAULT_OUTPUT, help="CSV result file ('' disables)", show_default=True)
@click.option("--dd", "--disable-download", "disable_download", is_flag=True, help="Skip download tests, rank by delay")
@click.option("--all4", is_flag=True, help="Test every IPv4 address in each range")
@click.option("--many4", is_flag=True, help="IPv4 quota preset, same as --v4 12")
@click.option("--some6", is_flag=True, help="IPv6 quota preset, same as --v6 8")
@click.option("--many6", is_flag=True, help="IPv6 quota preset, same as --v6 12")
@click.option("--lots6", is_flag=True, help="IPv6 quota preset, same as --v6 16")
@click.option("--more6", is_flag=True, help="IPv6 quota preset, same as --v6 18")
@click.option("--v4", "v4_quota", default="", help="IPv4 addresses per range as 2^n+/-m (e.g. 0+12)")
@click.option("--v6", "v6_quota", default="", help="IPv6 addresses per range as 2^n+/-m (e.g. 18-6)")
@click.option("--max-candidates", default=DEFAULT_MAX_CANDIDATES, help="Ceiling on total candidates", show_default=True)
@click.option("--batch-size", default=0, help="Probe in batches of this size (0 = all at once)", show_default=True)
@click.option("--download-workers", default=1, help="Concurrent download tests", show_default=True)
@click.option("--seed", type=int, default=None, help="Random seed for sampling and tie-breaking")
@click.option("--json", "json_output", is_flag=True, help="Output JSON to stdout")
@click.option("-v", "--verbose", is_flag=True, help="Debug logging to stderr")
@click.version_option(version=__version__)
def main(
    routines: int,
    ping_times: int,
    test_count: int,
    download_time: float,
    port: int,
    url: str,
    httping: bool,
    httping_code: str,
    colo: str,
    show_colo: bool,
    max_delay: float,
    min_delay: float,
    max_loss: float,
    min_speed: float,
    print_num: int,
    ip_file: str,
    ip_text: str,
    output: str,
    disable_download: bool,
    all4: bool,
    many4: bool,
    some6: bool,
    many6: bool,
    lots6: bool,
    more6: bool,
    v4_quota: str,
    v6_quota: str,
    max_candidates: int,
    batch_size: int,
    download_workers: int,
    seed: Optional[int],
    json_output: bool,
    verbose: bool,
) -> None:
    """cdnspeed: CDN edge address latency and speed tester.

    Samples addresses from the given ranges, probes their latency, and
    download-tests the best ones to find the fastest edges.
    """
    from cdnspeed.display import console, render_error
    from cdnspeed.logging_config import configure_logging

    configure_logging(verbose)

    v4_preset = V4_PRESETS["many4"] if many4 else None
    v6_preset = next(
        (V6_PRESETS[name] for name, flag in
         (("more6", more6), ("lots6", lots6), ("many6", many6), ("some6", some6)) if flag),
        None,
    )

    try:
        config = ScanConfig(
            routines=routines,
            ping_times=ping_times,
            port=port,
            url=url,
            httping=httping,
            httping_codes=_parse_codes(httping_code),
            colo_filter=_parse_colos(colo),
            show_colo=show_colo,
            max_delay_ms=max_delay,
            min_delay_ms=min_delay,
            max_loss_rate=max_loss,
            disable_download=disable_download,
            test_count=test_count,
            min_speed=min_speed,
            download_seconds=download_time,
            download_workers=download_workers,
            ip_file=ip_file,
            ip_text=ip_text,
            v4_quota=resolve_quota(v4_quota, v4_preset, 4),
            v6_quota=resolve_quota(v6_quota, v6_preset, 6),
            test_all_v4=all4,
            max_candidates=max_candidates,
            batch_size=batch_size,
            seed=seed,
            output=output,
            print_num=print_num,
            json_output=json_output,
        )
        result = asyncio.run(_run(config))
    except (RangeSpecError, OSError) as exc:
        render_error(str(exc))
        sys.exit(1)
    except KeyboardInterrupt:
        if not json_output:
            console.print("\n[yellow]Interrupted.[/yellow]")
        sys.exit(130)

    _handle_output(result, config)


async def _run(config: ScanConfig) -> ScanResult:
    """Main async orchestration with live progress."""
    from cdnspeed.display import (
        ProgressTracker,
        format_bandwidth,
        render_download_start,
        render_info,
        render_probe_start,
        render_warning,
    )
    from cdnspeed.engine import run_scan
    from cdnspeed.speedtest import BandwidthMonitor

    show_progress = not config.json_output
    monitor = BandwidthMonitor()
    trackers: dict[str, ProgressTracker] = {}
    available = 0

    if show_progress and config.min_speed > 0 and config.max_delay_ms >= DEFAULT_MAX_DELAY_MS:
        render_warning("--min-speed without --max-delay may keep testing for a long time")

    def on_candidates(count: int) -> None:
        if not show_progress:
            return
        render_probe_start(config, count)
        trackers["probe"] = ProgressTracker(count, suffix=lambda: f"Available: {available}")
        trackers["probe"].start()

    def on_probe(address, result) -> None:
        nonlocal available
        if result is not None:
            available += 1
        if "probe" in trackers:
            trackers["probe"].advance()

    def on_ranked(ranked) -> None:
        if "probe" in trackers:
            trackers.pop("probe").finish()
        if not show_progress or config.disable_download:
            return
        if not ranked:
            render_info("No address passed the latency test, skipping download test.")
            return
        queued = len(ranked) if config.min_speed > 0 else min(config.effective_test_count, len(ranked))
        render_download_start(config, queued)
        trackers["download"] = ProgressTracker(
            min(config.effective_test_count, queued),
            suffix=lambda: format_bandwidth(monitor.total),
        )
        trackers["download"].start()

    def on_speed(result, accepted: bool) -> None:
        if accepted and "download" in trackers:
            trackers["download"].advance()

    try:
        return await run_scan(
            config,
            on_candidates=on_candidates,
            probe_callback=on_probe,
            on_ranked=on_ranked,
            speed_callback=on_speed,
            monitor=monitor,
        )
    finally:
        for tracker in trackers.values():
            tracker.finish()


def _handle_output(result: ScanResult, config: ScanConfig) -> None:
    """Handle output rendering and export."""
    from cdnspeed.display import console, render_error, render_results
    from cdnspeed.export import export_csv, export_json, write_to_file

    if config.json_output:
        click.echo(export_json(result))
    else:
        render_results(result.results, config.print_num, config.show_colo)

    if config.output.strip() and result.results:
        try:
            write_to_file(export_csv(result.results), config.output)
        except OSError as exc:
            render_error(f"Cannot write {config.output}: {exc}")
            sys.exit(1)
        if not config.json_output:
            console.print(f"\n[dim]Results written to {config.output}[/dim]")


if __name__ == "__main__":
    main()
