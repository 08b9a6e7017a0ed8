"""
Proof Key for Code Exchange (RFC 7636), S256 only.
"""

import base64
import hashlib
import secrets
from typing import Tuple

SUPPORTED_METHOD = "S256"


class UnsupportedMethod(ValueError):
    """
    Any code_challenge_method other than exactly "S256".
    """


def compute_code_challenge(code_verifier: str) -> str:
    digest = hashlib.sha256(code_verifier.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def verify_pkce(code_verifier: str, code_challenge: str, method: str) -> bool:
    """
    Check a verifier against the challenge stored with the authorization code.
    """
    if method != SUPPORTED_METHOD:
        raise UnsupportedMethod(f"Unsupported code challenge method: {method}")
    if not code_verifier or not code_challenge:
        return False
    return secrets.compare_digest(
        compute_code_challenge(code_verifier).encode(), code_challenge.encode()
    )


def generate_pkce_pair() -> Tuple[str, str]:
    verifier = secrets.token_urlsafe(48)
    return verifier, compute_code_challenge(verifier)
