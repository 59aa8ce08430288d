"""reviewload CLI - Command line interface."""

import argparse
import asyncio
import sys

import httpx

from common.exceptions import ConfigurationError
from common.models.metrics import MetricKind, RunSummary
from common.utils import format_duration
from controller.config import build_run_config, init_settings
from controller.core.scheduler import target_at
from controller.main import (
    EXIT_CONFIG_ERROR,
    EXIT_OK,
    EXIT_THRESHOLDS_FAILED,
    configure_logging,
    execute,
)


def get_client(base_url: str = "http://127.0.0.1:8090") -> httpx.Client:
    """Get HTTP client for control API calls."""
    return httpx.Client(base_url=base_url, timeout=30.0)


def settings_from_args(args):
    """Build settings, letting explicit flags win over the environment."""
    kwargs = {}
    if getattr(args, "log_level", None):
        kwargs["log_level"] = args.log_level
    if getattr(args, "control_port", None) is not None:
        kwargs["control_port"] = args.control_port
    return init_settings(**kwargs)


def overrides_from_args(args) -> dict:
    """Run configuration overrides taken from command line flags."""
    overrides = {
        "base_url": args.base_url,
        "profile": args.profile,
        "check_mode": args.check_mode,
        "name": getattr(args, "name", None),
    }
    if args.smoke:
        overrides["mode"] = "smoke"
    if getattr(args, "exit_after_stages", False):
        overrides["exit_after_stages"] = True
    return overrides


def print_summary(summary: RunSummary) -> None:
    """Print the end-of-run summary."""
    print(f"\nRun: {summary.run_id}" + (f" ({summary.name})" if summary.name else ""))
    print(f"Profile: {summary.profile}  Mode: {summary.mode}  Checks: {summary.check_mode}")
    print(f"Duration: {format_duration(summary.duration_seconds)}  "
          f"Iterations: {summary.iterations}  Peak workers: {summary.peak_workers}")

    print(f"\n{'Metric':<40} {'Value':<60}")
    print("-" * 100)
    for name, metric in summary.metrics.items():
        if metric.kind == MetricKind.RATE and metric.rate is not None:
            rate = metric.rate
            value = f"{rate.value * 100:.2f}%  ✓ {rate.passes}  ✗ {rate.fails}"
        elif metric.trend is not None:
            trend = metric.trend
            value = (f"avg={trend.avg:.2f} min={trend.min:.2f} med={trend.med:.2f} "
                     f"max={trend.max:.2f} p(95)={trend.p95:.2f} n={trend.count}")
        else:
            value = "-"
        print(f"{name:<40} {value:<60}")

    if summary.thresholds:
        print("\nThresholds:")
        for result in summary.thresholds:
            status = "✓" if result.passed else "✗"
            observed = f"{result.observed:.4g}" if result.observed is not None else "n/a"
            print(f"  {status} {result.expression.label} (observed {observed})")

    print(f"\nResult: {'PASSED' if summary.passed else 'FAILED'}")


def cmd_run(args):
    """Run a load test."""
    settings = settings_from_args(args)
    configure_logging(settings)

    try:
        config = build_run_config(settings, args.config, overrides_from_args(args))
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    summary = asyncio.run(execute(config, settings))
    print_summary(summary)
    return EXIT_OK if summary.passed else EXIT_THRESHOLDS_FAILED


def cmd_validate(args):
    """Validate and print the resolved run configuration."""
    settings = settings_from_args(args)

    try:
        config = build_run_config(settings, args.config, overrides_from_args(args))
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    print(f"Target: {config.base_url}")
    print(f"Profile: {config.profile.value}  Mode: {config.mode.value}  Checks: {config.check_mode.value}")
    print(f"Pacing: step {config.pacing.step_delay:g}s, iteration {config.pacing.iteration_delay:g}s")
    print(f"\nStages ({format_duration(config.total_duration)}, peak {config.peak_target} workers):")
    for i, stage in enumerate(config.stages, 1):
        print(f"  {i}. {format_duration(stage.duration)} -> {stage.target}")

    print("\nThresholds:")
    for name, expressions in config.threshold_strings().items():
        print(f"  {name}: {', '.join(expressions)}")
    return EXIT_OK


def cmd_stages(args):
    """Print the target worker count over time."""
    settings = settings_from_args(args)

    try:
        config = build_run_config(settings, args.config, overrides_from_args(args))
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR
    if args.step <= 0:
        print("Error: --step must be positive", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    print(f"{'Elapsed':<12} {'Target':<8}")
    print("-" * 20)
    samples = int(config.total_duration // args.step) + 1
    for i in range(samples):
        elapsed = i * args.step
        print(f"{format_duration(elapsed):<12} {target_at(config.stages, elapsed):<8}")
    return EXIT_OK


def cmd_status(args):
    """Show the state of a running load test."""
    with get_client(args.url) as client:
        try:
            state = client.get("/status").json()
        except httpx.ConnectError:
            print(f"Error: Cannot connect to controller at {args.url}")
            return 1

        print(f"Run: {state.get('run_id')}  Status: {state.get('status', 'unknown').upper()}")
        print(f"Phase: {state.get('phase')}  Elapsed: {format_duration(state.get('elapsed_seconds', 0))}")
        print(f"Workers: {state.get('live_workers', 0)}/{state.get('target_workers', 0)} "
              f"(peak {state.get('peak_workers', 0)})")
        print(f"Iterations: {state.get('iterations', 0)}")
    return EXIT_OK


def cmd_stop(args):
    """Stop a running load test."""
    with get_client(args.url) as client:
        try:
            result = client.post("/stop").json()
        except httpx.ConnectError:
            print(f"Error: Cannot connect to controller at {args.url}")
            return 1
        print(result.get('message', 'Stop signal sent'))
    return EXIT_OK


def add_run_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-c", "--config", help="YAML run file")
    parser.add_argument("--base-url", help="Backend under test (default: $BASE_URL or http://localhost:8080)")
    parser.add_argument("--smoke", action="store_true", help="Smoke mode: one worker, short stage")
    parser.add_argument("--profile", choices=["full", "smoke", "independent", "spike"], help="Scenario profile")
    parser.add_argument("--check-mode", choices=["strict", "relaxed"], help="Check strictness")
    parser.add_argument("--log-level", help="Log level (default: INFO)")


def main(argv=None):
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Load test harness for the PR reviewer assignment service",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-u", "--url",
        default="http://127.0.0.1:8090",
        help="Control API URL for status/stop (default: http://127.0.0.1:8090)"
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # run
    run_parser = subparsers.add_parser("run", help="Run a load test")
    add_run_options(run_parser)
    run_parser.add_argument("-n", "--name", help="Run name")
    run_parser.add_argument("--exit-after-stages", action="store_true",
                            help="Stop when the last stage ends instead of holding its target")
    run_parser.add_argument("--control-port", type=int, help="Serve the control API on this port")
    run_parser.set_defaults(func=cmd_run)

    # validate
    validate_parser = subparsers.add_parser("validate", help="Validate a run configuration")
    add_run_options(validate_parser)
    validate_parser.set_defaults(func=cmd_validate)

    # stages
    stages_parser = subparsers.add_parser("stages", help="Print the worker target over time")
    add_run_options(stages_parser)
    stages_parser.add_argument("--step", type=float, default=10.0, help="Sampling step in seconds")
    stages_parser.set_defaults(func=cmd_stages)

    # status
    status_parser = subparsers.add_parser("status", help="Show running test status")
    status_parser.set_defaults(func=cmd_status)

    # stop
    stop_parser = subparsers.add_parser("stop", help="Stop the running test")
    stop_parser.set_defaults(func=cmd_stop)

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    sys.exit(args.func(args))


if __name__ == "__main__":
    main()
