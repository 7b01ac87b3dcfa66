"""Password hashing for signup/login (PBKDF2-HMAC-SHA256, salted)."""
import hashlib
import hmac
import secrets

ALGORITHM = "pbkdf2_sha256"
ITERATIONS = 240_000


def _derive(password: str, salt: str, iterations: int) -> str:
    return hashlib.pbkdf2_hmac(
        "sha256",
        password.encode(),
        salt.encode(),
        iterations,
    ).hex()


def hash_password(password: str) -> str:
    """Return "algorithm$iterations$salt$hash" for storage."""
    salt = secrets.token_hex(16)
    return f"{ALGORITHM}${ITERATIONS}${salt}${_derive(password, salt, ITERATIONS)}"


def verify_password(password: str, stored: str) -> bool:
    try:
        algorithm, iterations, salt, expected = stored.split("$")
    except ValueError:
        return False
    if algorithm != ALGORITHM or not iterations.isdigit():
        return False
    computed = _derive(password, salt, int(iterations))
    return hmac.compare_digest(computed, expected)
