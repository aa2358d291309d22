#
# Copyright 2025 EDT&Partners
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#

"""
Generate the RSA key pair and kid the tool signs its messages with.

Prints .env lines for LTI_KID, LTI_PRIVATE_KEY and LTI_PUBLIC_KEY and, with
--output-dir, also writes private.pem, public.pem and kid.txt.
"""
import argparse
from pathlib import Path

from lti.utils import SecurityUtils


def _escape(pem: str) -> str:
    return pem.strip().replace("\n", "\\n")


def env_lines(private_pem: str, public_pem: str, kid: str) -> list:
    return [
        f'LTI_KID="{kid}"',
        f'LTI_PRIVATE_KEY="{_escape(private_pem)}"',
        f'LTI_PUBLIC_KEY="{_escape(public_pem)}"',
    ]


def write_key_files(output_dir: Path, private_pem: str, public_pem: str, kid: str) -> None:
    output_dir.mkdir(parents=True, exist_ok=True)
    (output_dir / "private.pem").write_text(private_pem)
    (output_dir / "public.pem").write_text(public_pem)
    (output_dir / "kid.txt").write_text(kid)


def main(argv=None):
    parser = argparse.ArgumentParser(description="Generate the LTI tool signing key pair")
    parser.add_argument("--output-dir", type=Path, default=None, help="Also write the keys to this directory")
    args = parser.parse_args(argv)

    private_pem, public_pem, kid = SecurityUtils.generate_key_pair()

    print("# LTI JWT Keys")
    for line in env_lines(private_pem, public_pem, kid):
        print(line)
    print("\nPublish the key set to the platform at /lti/.well-known/jwks.json (or /lti/jwks).")

    if args.output_dir:
        write_key_files(args.output_dir, private_pem, public_pem, kid)
        print(f"Keys also saved to: {args.output_dir}/")


if __name__ == "__main__":
    main()
