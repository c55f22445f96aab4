import argparse
import sys

from . import batch
from .config import resolve_config
from .resources import apply_host_limits, compute_concurrency, probe_host


def _fmt_bytes(n: int) -> str:
    return f"{n / (1024 ** 3):.2f} GiB"


def print_probe(config_args: dict) -> None:
    config = resolve_config(config_args)
    host = probe_host()
    limits = compute_concurrency(host, config.concurrency.memory_headroom_fraction)
    effective = apply_host_limits(config, limits).concurrency

    print("\n" + "=" * 60)
    print("HOST PROFILE")
    print("=" * 60)
    print(f"CPU cores:            {host.cpu_count}")
    print(f"Total memory:         {_fmt_bytes(host.total_memory_bytes)}")
    print(f"Free memory:          {_fmt_bytes(host.free_memory_bytes)}")
    print("-" * 60)
    print(f"Job concurrency:      {effective.job_concurrency}")
    print(f"File concurrency:     {effective.file_concurrency}")
    print(f"Encode workers:       {effective.encode_workers}")
    print(f"Memory ceiling:       {_fmt_bytes(limits.memory_ceiling_bytes)}")
    print("=" * 60)


def print_summary(job) -> None:
    outcome = job.outcome
    print("\n" + "=" * 60)
    print("INGEST SUMMARY")
    print("=" * 60)
    print(f"Job:                  {job.id}")
    print(f"Status:               {job.status.value}")
    print(f"Failed attempts:      {job.attempts}/{job.max_attempts}")
    if outcome is not None:
        print(f"Album:                {outcome.parent_id}")
        print(f"Succeeded:            {len(outcome.succeeded)}")
        print(f"Failed:               {len(outcome.failed)}")
        for failure in outcome.failed:
            print(f"  - {failure.filename}: {failure.error}")
    if job.last_error:
        print(f"Last error:           {job.last_error}")
    print("=" * 60)


def main():
    parser = argparse.ArgumentParser(
        prog="photo-ingest", description="Batch photo ingestion pipeline"
    )
    parser.add_argument("--config", type=str, help="Config YAML (default: config/default.yaml)")
    parser.add_argument(
        "--log-level", dest="log_level", choices=["DEBUG", "INFO", "WARNING", "ERROR"]
    )
    subparsers = parser.add_subparsers(dest="command", help="Subcommands")

    # SERVE
    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", type=str, default="127.0.0.1", help="Bind address")
    serve_parser.add_argument("--port", type=int, default=8000, help="Bind port")

    # INGEST
    ingest_parser = subparsers.add_parser("ingest", help="Ingest a folder of images as one job")
    ingest_parser.add_argument("--input", "-i", type=str, required=True, help="Input file or folder")
    ingest_parser.add_argument("--owner", type=str, required=True, help="Owner (user) id")
    ingest_parser.add_argument("--album", type=str, help="Album name (default: folder name)")
    ingest_parser.add_argument("--label", type=str, default="", help="Event / batch label")
    ingest_parser.add_argument("--session", type=str, default="", help="Session id for progress")
    ingest_parser.add_argument("--priority", type=int, default=0, help="Job priority")
    ingest_parser.add_argument("--recursive", "-r", action="store_true", help="Recursive scan")
    ingest_parser.add_argument("--ext", type=str, help="Comma-separated extensions (jpg,png)")
    ingest_parser.add_argument("--limit", type=int, help="Max images to ingest")
    ingest_parser.add_argument(
        "--storage", choices=["none", "local", "s3"], help="Override blob storage backend"
    )
    ingest_parser.add_argument("--db", dest="database_url", type=str, help="Catalog database URL")
    ingest_parser.add_argument("--workers", "-w", dest="file_concurrency", type=int,
                               help="Files processed at once")
    ingest_parser.add_argument("--max-attempts", dest="max_attempts", type=int,
                               help="Attempts before the job fails")

    # PROBE
    subparsers.add_parser("probe", help="Show host resources and derived concurrency limits")

    args = parser.parse_args()
    # Convert args to dict, filtering None
    cli_dict = {k: v for k, v in vars(args).items() if v is not None}

    if args.command == "serve":
        import uvicorn

        from .api.main import create_app

        uvicorn.run(create_app(resolve_config(cli_dict)), host=args.host, port=args.port)

    elif args.command == "ingest":
        try:
            job = batch.run_ingest(cli_dict)
        except FileNotFoundError as e:
            print(f"❌ {e}")
            sys.exit(1)
        if job is None:
            print("No images found.")
            sys.exit(1)
        print_summary(job)
        if job.status.value != "completed":
            sys.exit(1)

    elif args.command == "probe":
        print_probe(cli_dict)

    else:
        parser.print_help()


if __name__ == "__main__":
    main()
