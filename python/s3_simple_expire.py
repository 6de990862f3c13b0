#!/usr/bin/env python3
"""
s3_simple_expire.py

Purpose:
  Delete objects in an S3 bucket that are older than a number of days.
  Intended for S3-compatible providers that have no storage lifecycle policies.

Features:
  - Retention window in whole days (--days), compared against LastModified
  - Custom endpoint (--endpoint / AWS_ENDPOINT) for non-AWS providers
  - Region chain: --region / AWS_DEFAULT_REGION, boto3 default provider, us-east-1
  - Dry-run mode (--dry-run) that reports without deleting

Limitations:
  - Only the first page of the listing (up to 1000 keys) is examined; a
    warning is logged when the bucket holds more.
  - No retries; the first failed request ends the run.

Requires:
  - boto3
  - Permissions: s3:ListBucket, s3:DeleteObject

Examples:
  python s3_simple_expire.py --bucket backups --days 30 --endpoint https://s3.example.com
  AWS_ENDPOINT=https://s3.example.com python s3_simple_expire.py -b backups -d 7 --dry-run

Exit Codes:
  0 success
  1 S3 request failed or unexpected error
  2 configuration error
  3 object listed without last modified metadata
  130 interrupted
"""
from __future__ import annotations
import argparse
import datetime as dt
import logging
import os
import sys
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

DEFAULT_REGION = "us-east-1"

logger = logging.getLogger("s3_simple_expire")


class ExpireError(Exception):
    exit_code = 1


class ConfigError(ExpireError):
    exit_code = 2


class MissingMetadataError(ExpireError):
    exit_code = 3


@dataclass(frozen=True)
class RunConfig:
    bucket: str
    days: int
    endpoint: str
    region: str
    dry_run: bool = False


def configure_logging():
    name = os.environ.get("LOG_LEVEL", "INFO").upper()
    level = logging.getLevelName(name)
    if not isinstance(level, int):
        raise ConfigError(f"Unknown log level in LOG_LEVEL: {name!r}")
    root = logging.getLogger()
    root.setLevel(level)
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s")
        )
        root.addHandler(handler)


def non_negative_int(value: str) -> int:
    try:
        days = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid number of days: {value!r}")
    if days < 0:
        raise argparse.ArgumentTypeError(f"number of days must not be negative: {days}")
    return days


def non_empty(value: str) -> str:
    if not value:
        raise argparse.ArgumentTypeError("bucket name must not be empty")
    return value


def parse_args(argv: Optional[List[str]] = None):
    p = argparse.ArgumentParser(
        description="Delete S3 objects older than a number of days"
    )
    p.add_argument("--bucket", "-b", required=True, type=non_empty, help="The name of the bucket")
    p.add_argument("--days", "-d", required=True, type=non_negative_int, help="Number of days to keep objects for")
    p.add_argument("--dry-run", action="store_true", help="Look for, but do not delete, old objects")
    p.add_argument("--endpoint", "-e", default=os.environ.get("AWS_ENDPOINT"), help="S3 endpoint URL (env AWS_ENDPOINT)")
    p.add_argument("--region", "-r", default=os.environ.get("AWS_DEFAULT_REGION"), help="S3 region (env AWS_DEFAULT_REGION)")
    return p.parse_args(argv)


def resolve_region(explicit: Optional[str], session=None) -> str:
    """Explicit value, then the boto3 default provider, then us-east-1."""
    if explicit:
        return explicit
    if session is None:
        session = boto3.Session()
    return session.region_name or DEFAULT_REGION


def resolve_config(args, session=None) -> RunConfig:
    if not args.endpoint:
        raise ConfigError("No endpoint specified; use --endpoint or set AWS_ENDPOINT")
    region = resolve_region(args.region, session)
    logger.info("Using endpoint %s in region %s", args.endpoint, region)
    return RunConfig(
        bucket=args.bucket,
        days=args.days,
        endpoint=args.endpoint,
        region=region,
        dry_run=args.dry_run,
    )


def compute_cutoff(days: int, now: Optional[dt.datetime] = None) -> dt.datetime:
    if now is None:
        now = dt.datetime.now(dt.timezone.utc)
    try:
        return now - dt.timedelta(days=days)
    except OverflowError:
        raise ConfigError(f"Invalid number of days to subtract: {days}")


def make_client(config: RunConfig, session=None):
    if session is None:
        session = boto3.Session()
    return session.client("s3", endpoint_url=config.endpoint, region_name=config.region)


def list_objects(s3, bucket: str) -> List[Dict[str, Any]]:
    resp = s3.list_objects_v2(Bucket=bucket)
    contents = resp.get("Contents", [])
    if resp.get("IsTruncated"):
        logger.warning(
            "Listing of %s is truncated; only the first %d objects are examined",
            bucket,
            len(contents),
        )
    return contents


def expire_objects(s3, config: RunConfig, cutoff: dt.datetime) -> List[str]:
    """Print and (unless dry-run) delete every listed object older than cutoff.

    Objects are handled in listing order. An object without LastModified
    stops the run, as does any failed delete request.
    """
    objects = list_objects(s3, config.bucket)
    expired = []
    for obj in objects:
        key = obj.get("Key", "")
        lastmod = obj.get("LastModified")
        if lastmod is None:
            raise MissingMetadataError(f"Object {key!r} does not have a last modified metadata entry")
        if lastmod.tzinfo is None:
            lastmod = lastmod.replace(tzinfo=dt.timezone.utc)
        if lastmod >= cutoff:
            continue

        print(f"{key} is older than {config.days} days, deleting...")
        if not config.dry_run:
            s3.delete_object(Bucket=config.bucket, Key=key)
        print(f"{key} deleted")
        expired.append(key)

    logger.info(
        "Examined %d objects in %s, %d older than %d days%s",
        len(objects),
        config.bucket,
        len(expired),
        config.days,
        " (dry-run)" if config.dry_run else "",
    )
    return expired


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    try:
        configure_logging()
        cutoff = compute_cutoff(args.days)
        sess = boto3.Session()
        config = resolve_config(args, sess)
        s3 = make_client(config, sess)
        expire_objects(s3, config, cutoff)
    except ExpireError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return e.exit_code
    except (ClientError, BotoCoreError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    return 0


def run():
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("Interrupted", file=sys.stderr)
        sys.exit(130)
    except Exception as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    run()
