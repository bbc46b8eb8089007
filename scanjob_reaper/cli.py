#!/usr/bin/env python3
"""
Scan-Job TTL Reaper command line.

Usage:
    scanjob-reaper run                 # reconcile forever (Ctrl-C stops after the current cycle)
    scanjob-reaper once                # one steady-state cycle
    scanjob-reaper cleanup [--ttl 1]   # force a short TTL on every matched Job now
    scanjob-reaper status              # list matched Jobs and their TTLs
    scanjob-reaper serve               # HTTP API + background loop
    scanjob-reaper manifests           # print enforcer RBAC/Deployment YAML
    scanjob-reaper install|uninstall   # apply/remove the enforcer in the cluster

Configuration comes from REAPER_* environment variables (see config.py).
"""
import asyncio
import logging
import signal
import sys

from pydantic import ValidationError

from .config import get_settings
from .schemas import PatchOutcome

logger = logging.getLogger(__name__)


def _configure_logging(level: str):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def _print_report(report):
    if report.skipped_cycle:
        print(f"❌ Cycle skipped: {report.error}")
        return

    print(f"Jobs listed:  {report.listed}")
    print(f"Jobs matched: {report.matched}")
    for outcome in PatchOutcome:
        count = report.count(outcome)
        if count:
            print(f"  {outcome.value:<10} {count}")
    for failure in report.failures:
        print(f"  ⚠️  {failure}")


async def _run_forever(scheduler):
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, scheduler.request_stop)
        except NotImplementedError:
            # Windows event loops have no signal handler support
            pass
    await scheduler.run_forever()


async def _run_once(scheduler):
    return await scheduler.run_once()


async def _status(scheduler):
    return await scheduler.reconciler.list_matching()


def cmd_run(settings, args) -> int:
    from .services.reconciler import build_scheduler

    scheduler = build_scheduler(settings)
    asyncio.run(_run_forever(scheduler))
    return 0


def cmd_once(settings, args) -> int:
    from .services.reconciler import build_scheduler

    scheduler = build_scheduler(settings)
    report = asyncio.run(_run_once(scheduler))
    _print_report(report)
    if report.skipped_cycle:
        return 1
    print(f"✅ Steady-state cycle complete (ttl={report.ttl_seconds}s)")
    return 0


def cmd_cleanup(settings, args) -> int:
    from .services.reconciler import build_scheduler

    scheduler = build_scheduler(settings)
    report = asyncio.run(scheduler.cleanup_now(args.ttl))
    _print_report(report)
    if report.skipped_cycle:
        return 1
    print(f"✅ TTL set to {report.ttl_seconds}s; the TTL controller will delete finished jobs promptly.")
    return 0


def cmd_status(settings, args) -> int:
    from .services.errors import ClusterUnavailableError
    from .services.reconciler import build_scheduler

    scheduler = build_scheduler(settings)
    try:
        jobs = asyncio.run(_status(scheduler))
    except ClusterUnavailableError as e:
        print(f"❌ {e}")
        return 1

    if not jobs:
        print(f"No jobs matching '{settings.job_name_prefix}*'")
        return 0

    print(f"\nFound {len(jobs)} job(s) matching '{settings.job_name_prefix}*':\n")
    print(f"  {'NAMESPACE':<24} {'NAME':<48} {'TTL':>6}  COMPLETED")
    for job in sorted(jobs, key=lambda j: (j.namespace or "", j.name or "")):
        ttl = "-" if job.ttl_seconds_after_finished is None else str(job.ttl_seconds_after_finished)
        completed = job.completion_time.isoformat() if job.completion_time else "running"
        print(f"  {job.namespace or '':<24} {job.name:<48} {ttl:>6}  {completed}")
    return 0


def cmd_serve(settings, args) -> int:
    import uvicorn

    uvicorn.run(
        "scanjob_reaper.main:app",
        host=args.host,
        port=args.port,
        log_level=settings.log_level.lower()
    )
    return 0


def cmd_manifests(settings, args) -> int:
    from .services.kubernetes.manifests import render_enforcer_yaml

    sys.stdout.write(render_enforcer_yaml(settings))
    return 0


def cmd_install(settings, args) -> int:
    from .services.kubernetes import get_k8s_client, install_enforcer

    asyncio.run(install_enforcer(get_k8s_client(), settings))
    print(f"✅ TTL enforcer deployed to namespace '{settings.namespace}'")
    return 0


def cmd_uninstall(settings, args) -> int:
    from .services.kubernetes import get_k8s_client, remove_enforcer

    deleted = asyncio.run(remove_enforcer(get_k8s_client(), settings))
    print(f"✅ TTL enforcer removed ({deleted} resource(s) deleted)")
    return 0


COMMANDS = {
    "run": cmd_run,
    "once": cmd_once,
    "cleanup": cmd_cleanup,
    "status": cmd_status,
    "serve": cmd_serve,
    "manifests": cmd_manifests,
    "install": cmd_install,
    "uninstall": cmd_uninstall,
}


def build_parser():
    import argparse

    parser = argparse.ArgumentParser(
        prog="scanjob-reaper",
        description="Narrow ttlSecondsAfterFinished on leftover scan Jobs"
    )
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Reconcile forever on the configured interval")
    subparsers.add_parser("once", help="Run a single steady-state cycle")

    cleanup = subparsers.add_parser("cleanup", help="Force a short TTL on every matched Job")
    cleanup.add_argument(
        "--ttl",
        type=int,
        default=None,
        help="TTL in seconds to force (default: REAPER_FORCED_TTL_SECONDS)",
    )

    subparsers.add_parser("status", help="List matched Jobs and their TTLs")

    serve = subparsers.add_parser("serve", help="Run the HTTP API with the background loop")
    serve.add_argument("--host", default="127.0.0.1", help="Bind address")
    serve.add_argument("--port", type=int, default=8000, help="Bind port")

    subparsers.add_parser("manifests", help="Print the enforcer manifests as YAML")
    subparsers.add_parser("install", help="Install or update the in-cluster enforcer")
    subparsers.add_parser("uninstall", help="Remove the in-cluster enforcer")
    return parser


def main(argv=None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    if args.command == "cleanup" and args.ttl is not None and args.ttl < 0:
        parser.error("--ttl must be zero or greater")

    try:
        settings = get_settings()
    except ValidationError as e:
        print(f"❌ Invalid configuration:\n{e}")
        return 1

    _configure_logging(settings.log_level)

    try:
        return COMMANDS[args.command](settings, args)
    except RuntimeError as e:
        # Kubernetes configuration could not be loaded
        print(f"❌ {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
