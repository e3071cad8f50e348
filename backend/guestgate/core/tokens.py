"""Opaque token, passcode, and one-time code primitives.

Magic links, sessions, and invites share one pattern: a random token is
handed to the holder once, and only its SHA-256 hash is persisted. The hash
is a lookup index, not a password store; the token carries 256 bits of
entropy, so a fast hash is sufficient.

Passcodes and one-time codes are low-entropy and get slower or keyed hashes:
- passcodes: bcrypt (salted, slow, constant-time check)
- one-time codes: HMAC-SHA256 keyed by AUTH_SECRET
"""

import hashlib
import hmac
import secrets

import bcrypt

# 32 bytes = 256 bits of entropy
_TOKEN_BYTES = 32

_OTP_DIGITS = 6

# bcrypt silently truncates input at 72 bytes
_MAX_PASSCODE_BYTES = 72


def generate_token() -> str:
    """Generate a URL-safe opaque token from the OS CSPRNG.

    Returns:
        43-character URL-safe base64 string (32 random bytes).
    """
    return secrets.token_urlsafe(_TOKEN_BYTES)


def hash_token(token: str) -> str:
    """Deterministic SHA-256 hex digest of a token.

    Args:
        token: Plain token as presented by the holder.

    Returns:
        64-character lowercase hex digest.
    """
    return hashlib.sha256(token.encode()).hexdigest()


def issue_token() -> tuple[str, str]:
    """Generate a token and its hash.

    Returns:
        (plain_token, token_hash); plain for the holder, hash for the DB.
    """
    plain = generate_token()
    return plain, hash_token(plain)


def hashes_match(left: str, right: str) -> bool:
    """Compare two digests in constant time."""
    return hmac.compare_digest(left.encode(), right.encode())


def hash_passcode(passcode: str) -> str:
    """Hash an invite passcode with bcrypt.

    Args:
        passcode: Plain passcode chosen by the project owner.

    Returns:
        bcrypt hash as a UTF-8 string.

    Raises:
        ValueError: If the passcode exceeds bcrypt's 72-byte input limit.
    """
    encoded = passcode.encode()
    if len(encoded) > _MAX_PASSCODE_BYTES:
        msg = f"Passcode must be at most {_MAX_PASSCODE_BYTES} bytes"
        raise ValueError(msg)
    return bcrypt.hashpw(encoded, bcrypt.gensalt()).decode()


def verify_passcode(passcode: str, passcode_hash: str) -> bool:
    """Check a presented passcode against its stored bcrypt hash.

    Returns False instead of raising for oversized input or a malformed
    stored hash, so callers map every mismatch to one error.
    """
    encoded = passcode.encode()
    if len(encoded) > _MAX_PASSCODE_BYTES:
        return False
    try:
        return bcrypt.checkpw(encoded, passcode_hash.encode())
    except ValueError:
        return False


def generate_otp_code() -> str:
    """Generate a zero-padded 6-digit one-time code."""
    return f"{secrets.randbelow(10**_OTP_DIGITS):0{_OTP_DIGITS}d}"


def hash_otp_code(code: str, secret: str) -> str:
    """Keyed hash of a one-time code.

    A plain SHA-256 of a 6-digit code is reversible by enumeration, so the
    digest is keyed by the server secret.

    Args:
        code: Plain one-time code.
        secret: AUTH_SECRET value.

    Returns:
        64-character hex HMAC-SHA256 digest.
    """
    return hmac.new(secret.encode(), code.encode(), hashlib.sha256).hexdigest()
