"""
cronmetrics command line: run the server and administer jobs directly
against the configured database.
"""

import argparse
import json
import sys
from typing import Dict, List, Optional

from pydantic import ValidationError

from . import __version__
from .config import ConfigError, Settings, example_config, load_settings
from .db import Database
from .errors import CronMetricsError
from .logging_config import setup_logging
from .schemas.job import JobCreate, JobOut, JobUpdate
from .services.status import Lifecycle
from .services.store import JobStore
from .utils.apikey import generate_api_key, mask_api_key


class CLIError(Exception):
    pass


def parse_labels(items: Optional[List[str]]) -> Dict[str, str]:
    """key=value strings into a dict"""
    labels: Dict[str, str] = {}
    for item in items or []:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise CLIError(f"invalid label format: {item} (expected key=value)")
        labels[key] = value
    return labels


def _validation_message(e: ValidationError) -> str:
    first = e.errors()[0]
    where = ".".join(str(p) for p in first.get("loc", ()))
    return f"{where}: {first.get('msg')}" if where else first.get("msg", "invalid input")


def _open_store(settings: Settings) -> JobStore:
    db = Database(settings.database)
    db.init_schema()
    return JobStore(db)


def _job_dict(job, api_key_mode: str = "full") -> dict:
    data = JobOut.model_validate(job).model_dump(mode="json")
    if api_key_mode == "masked":
        data["api_key"] = mask_api_key(data.get("api_key") or "")
    elif api_key_mode == "hidden":
        data.pop("api_key", None)
    return data


def _print_table(jobs, show_api_keys: bool) -> None:
    if not jobs:
        print("No jobs found")
        return

    headers = ["ID", "NAME", "HOST", "STATUS", "THRESHOLD", "LAST REPORTED", "LABELS"]
    if show_api_keys:
        headers.append("API KEY")

    rows = []
    for job in jobs:
        labels = ",".join(f"{k}={v}" for k, v in sorted((job.labels or {}).items()))
        last = job.last_reported_at.strftime("%Y-%m-%d %H:%M:%S") if job.last_reported_at else "never"
        row = [str(job.id), job.name, job.host, job.status, f"{job.automatic_failure_threshold}s",
               last, labels or "-"]
        if show_api_keys:
            row.append(mask_api_key(job.api_key or ""))
        rows.append(row)

    widths = [max(len(r[i]) for r in [headers] + rows) for i in range(len(headers))]
    for row in [headers] + rows:
        print("  ".join(cell.ljust(widths[i]) for i, cell in enumerate(row)).rstrip())


def _print_details(job) -> None:
    print(f"Job ID:     {job.id}")
    print(f"Name:       {job.name}")
    print(f"Host:       {job.host}")
    print(f"Status:     {job.status}")
    print(f"Threshold:  {job.automatic_failure_threshold}s")
    print(f"API Key:    {job.api_key or '-'}")
    if job.last_reported_at:
        print(f"Last run:   {job.last_reported_at.strftime('%Y-%m-%d %H:%M:%S')} UTC")
    else:
        print("Last run:   never")
    if job.labels:
        print("Labels:")
        for key in sorted(job.labels):
            print(f"  {key}={job.labels[key]}")


# ----------------------------------------------------------------------
# commands
# ----------------------------------------------------------------------

def cmd_serve(args, settings: Settings) -> int:
    import uvicorn

    from .main import create_app

    setup_logging(settings.logging)
    ssl = {}
    if settings.security.require_https:
        ssl = {
            "ssl_certfile": settings.security.tls_cert_file,
            "ssl_keyfile": settings.security.tls_key_file,
        }
    uvicorn.run(
        create_app(settings),
        host=settings.server.host,
        port=settings.server.port,
        timeout_keep_alive=settings.server.keep_alive_timeout,
        timeout_graceful_shutdown=settings.server.shutdown_timeout,
        log_config=None,
        **ssl,
    )
    return 0


def cmd_job_add(args, settings: Settings) -> int:
    try:
        body = JobCreate(
            name=args.name,
            host=args.host,
            automatic_failure_threshold=args.threshold,
            labels=parse_labels(args.label),
            status=args.status,
            api_key=args.api_key,
        )
    except ValidationError as e:
        raise CLIError(_validation_message(e)) from e

    api_key = body.api_key or generate_api_key()
    job = _open_store(settings).create_job(
        name=body.name,
        host=body.host,
        api_key=api_key,
        automatic_failure_threshold=body.automatic_failure_threshold,
        labels=body.labels,
        status=body.status.value,
    )
    print(f"Job ID {job.id} ('{job.name}@{job.host}') created successfully")
    print(f"API Key: {api_key}")
    if not args.api_key:
        print("\nNOTE: Save this API key for your cron jobs to submit results.")
        print(f"You can retrieve it later using: cronmetrics job show {job.id}")
    return 0


def cmd_job_list(args, settings: Settings) -> int:
    jobs = _open_store(settings).list_jobs(parse_labels(args.label))
    if args.json:
        mode = "masked" if args.show_api_keys else "hidden"
        print(json.dumps([_job_dict(j, mode) for j in jobs], indent=2))
    else:
        _print_table(jobs, args.show_api_keys)
    return 0


def cmd_job_show(args, settings: Settings) -> int:
    job = _open_store(settings).get_by_id(args.id)
    if job is None:
        raise CLIError(f"job not found with ID: {args.id}")
    if args.json:
        print(json.dumps(_job_dict(job), indent=2))
    else:
        _print_details(job)
    return 0


def cmd_job_update(args, settings: Settings) -> int:
    changes = {}
    if args.name is not None:
        changes["name"] = args.name
    if args.host is not None:
        changes["host"] = args.host
    if args.api_key is not None:
        changes["api_key"] = args.api_key
    if args.threshold is not None:
        changes["automatic_failure_threshold"] = args.threshold
    if args.label:
        changes["labels"] = parse_labels(args.label)
    if args.status:
        changes["status"] = args.status
    if args.maintenance:
        changes["status"] = Lifecycle.MAINTENANCE.value

    try:
        body = JobUpdate(**changes)
    except ValidationError as e:
        raise CLIError(_validation_message(e)) from e

    validated = body.model_dump(exclude_unset=True)
    if "status" in validated:
        validated["status"] = validated["status"].value
    job = _open_store(settings).update_job(args.id, **validated)
    print(f"Job ID {job.id} ('{job.name}@{job.host}') updated successfully")
    return 0


def cmd_job_delete(args, settings: Settings) -> int:
    store = _open_store(settings)
    job = store.get_by_id(args.id)
    if job is None:
        raise CLIError(f"job not found with ID: {args.id}")
    store.delete_job(args.id)
    print(f"Job ID {job.id} ('{job.name}@{job.host}') deleted successfully")
    return 0


def cmd_config_example(args, settings: Optional[Settings]) -> int:
    print(example_config(), end="")
    return 0


# ----------------------------------------------------------------------
# parser
# ----------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cronmetrics",
        description="Cron job monitoring with Prometheus metrics",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", help="path to a YAML config file")
    parser.add_argument("--dev", action="store_true",
                        help="development mode: temporary database, debug logging, no admin auth")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="start the HTTP server")
    serve.set_defaults(func=cmd_serve)

    job = sub.add_parser("job", help="job management operations")
    job_sub = job.add_subparsers(dest="job_command", required=True)

    add = job_sub.add_parser("add", help="add a new job")
    add.add_argument("-n", "--name", required=True, help="job name")
    add.add_argument("--host", required=True, help="host name")
    add.add_argument("--api-key", help="API key for the job (generated when omitted)")
    add.add_argument("-t", "--threshold", type=int, default=3600,
                     help="automatic failure threshold in seconds")
    add.add_argument("-l", "--label", action="append", help="label in key=value format (repeatable)")
    add.add_argument("-s", "--status", default=Lifecycle.ACTIVE.value,
                     choices=[s.value for s in Lifecycle], help="lifecycle status")
    add.set_defaults(func=cmd_job_add)

    lst = job_sub.add_parser("list", help="list jobs")
    lst.add_argument("-l", "--label", action="append", help="filter by label key=value (repeatable)")
    lst.add_argument("-j", "--json", action="store_true", help="output as JSON")
    lst.add_argument("--show-api-keys", action="store_true", help="show API keys (masked)")
    lst.set_defaults(func=cmd_job_list)

    show = job_sub.add_parser("show", help="show job details")
    show.add_argument("id", type=int)
    show.add_argument("-j", "--json", action="store_true", help="output as JSON")
    show.set_defaults(func=cmd_job_show)

    upd = job_sub.add_parser("update", help="update a job")
    upd.add_argument("id", type=int)
    upd.add_argument("-n", "--name")
    upd.add_argument("--host")
    upd.add_argument("--api-key")
    upd.add_argument("-t", "--threshold", type=int)
    upd.add_argument("-l", "--label", action="append", help="replace labels with key=value pairs")
    upd.add_argument("-s", "--status", choices=[s.value for s in Lifecycle])
    upd.add_argument("-m", "--maintenance", action="store_true", help="set job to maintenance mode")
    upd.set_defaults(func=cmd_job_update)

    delete = job_sub.add_parser("delete", help="delete a job and its results")
    delete.add_argument("id", type=int)
    delete.set_defaults(func=cmd_job_delete)

    config = sub.add_parser("config", help="configuration helpers")
    config_sub = config.add_subparsers(dest="config_command", required=True)
    example = config_sub.add_parser("example", help="print an example configuration")
    example.set_defaults(func=cmd_config_example, needs_settings=False)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        settings = None
        if getattr(args, "needs_settings", True):
            settings = load_settings(args.config, dev=args.dev)
        return args.func(args, settings)
    except (CLIError, ConfigError, CronMetricsError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
