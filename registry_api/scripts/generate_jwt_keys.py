#!/usr/bin/env python3
# SPDX-License-Identifier: Apache-2.0

"""
Script to generate an RSA key pair for JWT signing.
Keeps tokens valid across restarts and across processes sharing the keys.
"""

from ..services.auth import generate_key_pair


def format_env(private_key: str, public_key: str) -> str:
    """Render the key pair as single-line environment assignments."""
    newline = "\\n"
    return "\n".join([
        f'JWT_PRIVATE_KEY="{private_key.replace(chr(10), newline)}"',
        f'JWT_PUBLIC_KEY="{public_key.replace(chr(10), newline)}"'
    ])


if __name__ == "__main__":
    private_key, public_key = generate_key_pair()

    print("=== JWT PRIVATE KEY ===")
    print(private_key)
    print("\n=== JWT PUBLIC KEY ===")
    print(public_key)

    print("\n=== Environment Variables ===")
    print(format_env(private_key, public_key))
