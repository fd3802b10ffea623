"""One-way hashing for refresh secrets."""
import base64
import hashlib

import bcrypt

MIN_ROUNDS = 4
MAX_ROUNDS = 31


def _prehash(plain: str) -> bytes:
    # bcrypt reads at most 72 bytes; the digest keeps every input byte significant
    return base64.b64encode(hashlib.sha256(plain.encode("utf-8")).digest())


class SecretHasher:
    """Salted bcrypt hashing with a configurable cost factor.

    The only place refresh-secret hashes are produced or compared: every salt
    is fresh, so two hashes of the same secret never compare equal and
    :meth:`verify` is the single comparison primitive. Secrets of any length
    are reduced to a 44-byte SHA-256 digest before bcrypt sees them.
    """

    def __init__(self, rounds: int = 12) -> None:
        self.rounds = self._check_rounds(rounds)

    @staticmethod
    def _check_rounds(rounds: int) -> int:
        if not MIN_ROUNDS <= rounds <= MAX_ROUNDS:
            raise ValueError(f"bcrypt rounds must be between {MIN_ROUNDS} and {MAX_ROUNDS}")
        return rounds

    def hash(self, plain: str, rounds: int | None = None) -> str:
        """Hash a secret."""
        cost = self.rounds if rounds is None else self._check_rounds(rounds)
        return bcrypt.hashpw(_prehash(plain), bcrypt.gensalt(rounds=cost)).decode("utf-8")

    def verify(self, plain: str, hashed: str) -> bool:
        """Verify a secret against its stored hash."""
        try:
            return bcrypt.checkpw(_prehash(plain), hashed.encode("utf-8"))
        except ValueError:
            # malformed stored hash
            return False
