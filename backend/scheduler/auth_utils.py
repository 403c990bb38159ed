import secrets


class CredentialVerifier:
    """Turns a submitted password into its stored form and checks it back."""

    def encode(self, password: str) -> str:
        raise NotImplementedError

    def verify(self, password: str, stored: str) -> bool:
        raise NotImplementedError


class PlaintextVerifier(CredentialVerifier):
    """Stores passwords as typed and compares them exactly.

    Known weakness kept for compatibility with existing ``users.csv`` files.
    A hashing verifier can replace it without touching the user table.
    """

    def encode(self, password: str) -> str:
        return password

    def verify(self, password: str, stored: str) -> bool:
        return secrets.compare_digest(password.encode("utf-8"), stored.encode("utf-8"))
