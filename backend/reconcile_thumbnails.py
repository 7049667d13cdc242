#!/usr/bin/env python3
"""
Script to replay thumbnail jobs for originals that have no thumbnail.

Uploads made while the queue was down are stored without a thumbnail job.
This script scans the bucket, lists originals whose derived thumbnail is
missing, and re-enqueues a job for each. Replays are safe: the worker
overwrites the same derived key.

Usage:
    # Report only
    python reconcile_thumbnails.py --dry-run

    # One user only
    python reconcile_thumbnails.py --user alice@example.com

    # Also delete thumbnails whose original is gone
    python reconcile_thumbnails.py --prune-orphans --yes
"""
import argparse
import sys

from picstash.config import settings
from picstash.schemas.thumbnail import ThumbnailJob
from picstash.services.thumbnail_queue import ThumbnailQueue
from picstash.storage.keys import derive_thumbnail_key, is_thumbnail_key, original_key_for, owner_prefix
from picstash.storage.s3_client import get_s3_client
from picstash.utils.logging import configure_logging


def find_gaps(keys):
    """
    Split a key listing into originals missing a thumbnail and orphan thumbnails.

    Returns:
        Tuple of (originals_without_thumbnail, thumbnails_without_original)
    """
    key_set = set(keys)
    missing = [
        key for key in keys
        if not is_thumbnail_key(key) and derive_thumbnail_key(key) not in key_set
    ]
    orphans = [
        key for key in keys
        if is_thumbnail_key(key) and original_key_for(key) not in key_set
    ]
    return sorted(missing), sorted(orphans)


def list_keys(storage, users=None):
    """All keys under the given users' prefixes, or under every prefix in the bucket."""
    if users:
        prefixes = [owner_prefix(user) + "/" for user in users]
    else:
        prefixes = storage.list_owner_prefixes()

    keys = []
    for prefix in prefixes:
        keys.extend(obj["Key"] for obj in storage.list_objects(prefix))
    return keys


def main():
    parser = argparse.ArgumentParser(description='Re-enqueue thumbnail jobs for originals without thumbnails')
    parser.add_argument('--user', '-u', action='append', default=[],
                        help='Only scan this user (repeatable). Default: whole bucket')
    parser.add_argument('--dry-run', action='store_true',
                        help='Report gaps without enqueuing or deleting anything')
    parser.add_argument('--prune-orphans', action='store_true',
                        help='Delete thumbnails whose original no longer exists')
    parser.add_argument('--yes', '-y', action='store_true',
                        help='Skip confirmation prompts (non-interactive mode)')
    args = parser.parse_args()

    configure_logging('picstash-reconcile', settings.log_level)

    storage = get_s3_client()
    if not storage.is_configured:
        print("ERROR: Object storage not configured (S3_ENDPOINT, S3_ACCESS_KEY, S3_SECRET_KEY)")
        sys.exit(1)

    print("=" * 50)
    print("THUMBNAIL RECONCILIATION")
    print("=" * 50)
    print(f"Bucket: {storage.bucket}")
    print(f"Scope:  {', '.join(args.user) if args.user else 'all users'}")
    print()

    keys = list_keys(storage, args.user)
    missing, orphans = find_gaps(keys)

    print(f"Scanned {len(keys)} objects")
    print(f"  Originals without thumbnail: {len(missing)}")
    for key in missing[:10]:
        print(f"    - {key}")
    if len(missing) > 10:
        print(f"    ... and {len(missing) - 10} more")
    print(f"  Orphan thumbnails: {len(orphans)}")

    if args.dry_run:
        print("\nDry run, nothing changed.")
        return

    if not args.yes and (missing or (args.prune_orphans and orphans)):
        confirm = input("\nProceed? (yes/no): ")
        if confirm.lower() != 'yes':
            print("Aborted.")
            sys.exit(0)

    queue = ThumbnailQueue(settings)
    queued = 0
    failed = 0
    for key in missing:
        job = ThumbnailJob(bucket=storage.bucket, key=key)
        if queue.enqueue(job):
            queued += 1
        else:
            failed += 1

    pruned = (0, 0)
    if args.prune_orphans and orphans:
        pruned = storage.delete_objects_batch(orphans)

    print(f"\n{'='*50}")
    print("SUMMARY:")
    print(f"  Jobs enqueued: {queued}")
    print(f"  Enqueue failures: {failed}")
    if args.prune_orphans:
        print(f"  Orphans deleted: {pruned[0]} (failed: {pruned[1]})")
    print(f"{'='*50}")

    if failed:
        sys.exit(2)


if __name__ == '__main__':
    main()
