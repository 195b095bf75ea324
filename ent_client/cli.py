"""CLI: ent-client buckets | ls | put | get."""
import argparse
import json
import sys
from pathlib import Path

from .client import EntClient, EntError, IntegrityError


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ent-client", description="Talk to an ent object storage gateway")
    parser.add_argument("--base-url", default="http://localhost:8000", help="Gateway base URL")
    sub = parser.add_subparsers(dest="command", required=True)

    # buckets
    p_buckets = sub.add_parser("buckets", help="List buckets")
    p_buckets.set_defaults(func=cmd_buckets)

    # ls
    p_ls = sub.add_parser("ls", help="List files in a bucket")
    p_ls.add_argument("bucket", help="Bucket name")
    p_ls.add_argument("--prefix", default=None, help="Key prefix")
    p_ls.add_argument("--limit", type=int, default=None, help="Maximum number of files")
    p_ls.add_argument("--sort", default=None, help="+key, -key, +lastModified or -lastModified")
    p_ls.set_defaults(func=cmd_ls)

    # put
    p_put = sub.add_parser("put", help="Upload a local file")
    p_put.add_argument("bucket", help="Bucket name")
    p_put.add_argument("key", help="Object key")
    p_put.add_argument("path", help="Local file path")
    p_put.set_defaults(func=cmd_put)

    # get
    p_get = sub.add_parser("get", help="Download a file")
    p_get.add_argument("bucket", help="Bucket name")
    p_get.add_argument("key", help="Object key")
    p_get.add_argument("dest", help="Local destination path")
    p_get.add_argument("--sha1", default=None, help="Expected hex SHA-1; fail on mismatch")
    p_get.set_defaults(func=cmd_get)
    return parser


def main(argv: list[str] | None = None, client: EntClient | None = None) -> int:
    args = build_parser().parse_args(argv)
    client = client or EntClient(base_url=args.base_url)
    try:
        return args.func(client, args)
    except (EntError, IntegrityError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        client.close()


def cmd_buckets(client: EntClient, args: argparse.Namespace) -> int:
    print(json.dumps(client.list_buckets(), indent=2))
    return 0


def cmd_ls(client: EntClient, args: argparse.Namespace) -> int:
    files = client.list_files(args.bucket, prefix=args.prefix, limit=args.limit, sort=args.sort)
    for f in files:
        print(f"{f['lastModified']}  {f['key']}")
    return 0


def cmd_put(client: EntClient, args: argparse.Namespace) -> int:
    path = Path(args.path)
    if not path.is_file():
        print(f"Missing file: {path}", file=sys.stderr)
        return 1
    record = client.upload(args.bucket, args.key, path)
    print(json.dumps(record, indent=2))
    return 0


def cmd_get(client: EntClient, args: argparse.Namespace) -> int:
    digest = client.download(args.bucket, args.key, args.dest, expected_digest=args.sha1)
    print(f"{digest}  {args.dest}", file=sys.stderr)
    return 0


if __name__ == "__main__":
    sys.exit(main())
