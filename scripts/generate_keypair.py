import argparse
from pathlib import Path

from edge_gateway.keys import generate_private_key, private_key_pem, public_key_pem


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Generate an RSA-2048 signing key pair.")
    parser.add_argument("--out-dir", type=Path, default=Path("."))
    parser.add_argument("--name", default="edge_gateway")
    args = parser.parse_args(argv)

    key = generate_private_key()
    args.out_dir.mkdir(parents=True, exist_ok=True)
    private_path = args.out_dir / f"{args.name}_private.pem"
    public_path = args.out_dir / f"{args.name}_public.pem"
    private_path.write_text(private_key_pem(key))
    private_path.chmod(0o600)
    public_path.write_text(public_key_pem(key))
    print(f"private={private_path}")
    print(f"public={public_path}")


if __name__ == "__main__":
    main()
