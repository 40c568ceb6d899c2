import argparse
import time
from pathlib import Path

from edge_gateway.keys import load_private_key
from edge_gateway.signing import UrlSigner


def main(argv: list[str] | None = None) -> str:
    parser = argparse.ArgumentParser(description="Issue a signed gateway URL for an object path.")
    parser.add_argument("path", help="object path, e.g. /images/foo.png")
    parser.add_argument("--private-key", type=Path, required=True)
    parser.add_argument("--base-url", default="https://cdn.example.com")
    parser.add_argument("--ttl", type=int, default=15 * 60, help="seconds until expiry")
    parser.add_argument("--region", default=None)
    args = parser.parse_args(argv)

    if not args.path.startswith("/"):
        parser.error("path must start with /")
    signer = UrlSigner(load_private_key(args.private_key.read_text()))
    url = signer.signed_url(args.base_url, args.path, int(time.time()) + args.ttl, args.region)
    print(url)
    return url


if __name__ == "__main__":
    main()
