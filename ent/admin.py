"""
Register buckets in the SQL catalog (PROVIDER_BACKEND=sql).
Usage: ent-admin master "Master <master@ent.io>" peer nxt
Each bucket name may be followed by an owner mailbox ("Name <addr>").
"""
import argparse
import sys

from ent.core.config import get_settings
from ent.db.provider import SQLProvider
from ent.errors import BucketExists
from ent.models import Bucket, Owner


def parse_specs(tokens: list[str]) -> list[Bucket]:
    buckets = []
    for token in tokens:
        if "<" in token and buckets:
            prev = buckets.pop()
            buckets.append(Bucket(name=prev.name, owner=Owner.parse(token)))
        else:
            buckets.append(Bucket(name=token))
    return buckets


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Register buckets in the SQL bucket catalog")
    parser.add_argument("specs", nargs="+", help='bucket names, each optionally followed by "Name <addr>"')
    parser.add_argument("--database-url", default=None, help="Defaults to DATABASE_URL")
    args = parser.parse_args(argv)

    provider = SQLProvider(args.database_url or get_settings().database_url)
    provider.init()
    try:
        for bucket in parse_specs(args.specs):
            try:
                provider.register(bucket)
                print(f"registered {bucket.name} ({bucket.owner})")
            except BucketExists:
                print(f"exists     {bucket.name}", file=sys.stderr)
    finally:
        provider.dispose()
    return 0


if __name__ == "__main__":
    sys.exit(main())
