#!/usr/bin/env python3
"""
Repository Ingestion CLI

Submit ingestion jobs and inspect jobs, repositories and services.
All commands print JSON on stdout.

Usage:
    repo-ingest ingest https://github.com/owner/name --branch main --wait
    repo-ingest status <job_id>
    repo-ingest jobs
    repo-ingest delete owner/name
    repo-ingest stats
    repo-ingest health
"""

import argparse
import json
import logging
import sys
from typing import Any, Optional

from ..core.config import load_config
from ..core.errors import IngestionError
from ..core.models import JobStatus
from ..core.pipeline import IngestionPipeline

logger = logging.getLogger(__name__)


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='repo-ingest',
        description='Ingest GitHub repositories into a vector index for code search'
    )
    parser.add_argument(
        '--config',
        help='YAML configuration file (default: $INGEST_CONFIG, then environment only)'
    )

    subparsers = parser.add_subparsers(dest='command', help='Command to run')

    ingest_parser = subparsers.add_parser('ingest', help='Submit a repository for ingestion')
    ingest_parser.add_argument('url', help='GitHub repository URL')
    ingest_parser.add_argument('--branch', default='main', help='Branch to ingest (default: main)')
    ingest_parser.add_argument(
        '--wait',
        action='store_true',
        help='Block until the job finishes and print the final record'
    )
    ingest_parser.add_argument(
        '--timeout',
        type=float,
        default=None,
        help='Seconds to wait with --wait (default: no limit)'
    )

    status_parser = subparsers.add_parser('status', help='Show one job')
    status_parser.add_argument('job_id', help='Job id returned by ingest')

    subparsers.add_parser('jobs', help='List all jobs')

    delete_parser = subparsers.add_parser('delete', help='Delete an ingested repository')
    delete_parser.add_argument('repo_id', help='Repository id (owner/name)')

    subparsers.add_parser('stats', help='Vector index and repository statistics')
    subparsers.add_parser('health', help='Check Redis and Qdrant connectivity')

    return parser


def main(argv: Optional[list] = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    try:
        config = load_config(args.config)
    except (FileNotFoundError, ValueError) as e:
        print(f"❌ Invalid configuration: {e}", file=sys.stderr)
        return 1

    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s'
    )

    pipeline = IngestionPipeline(config)

    try:
        if args.command == 'ingest':
            job = pipeline.submit(args.url, args.branch)
            if args.wait:
                job = pipeline.wait_for_job(job.id, timeout=args.timeout) or job
            _print_json(job.to_dict())
            return 1 if job.status == JobStatus.FAILED else 0

        elif args.command == 'status':
            job = pipeline.get_job(args.job_id)
            if job is None:
                logger.error(f"❌ Job not found: {args.job_id}")
                return 1
            _print_json(job.to_dict())
            return 1 if job.status == JobStatus.FAILED else 0

        elif args.command == 'jobs':
            _print_json([job.to_dict() for job in pipeline.list_jobs()])
            return 0

        elif args.command == 'delete':
            _print_json(pipeline.delete_repository(args.repo_id))
            return 0

        elif args.command == 'stats':
            _print_json(pipeline.get_stats())
            return 0

        elif args.command == 'health':
            health = pipeline.health_check()
            _print_json(health)
            return 0 if health['status'] == 'healthy' else 1

    except (IngestionError, ValueError) as e:
        logger.error(f"❌ {e}")
        return 1
    finally:
        # Without --wait the submitted job keeps running until it finishes
        pipeline.shutdown(wait=True)

    return 1


if __name__ == '__main__':
    sys.exit(main())
