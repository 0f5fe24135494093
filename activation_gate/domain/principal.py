"""Authenticated identity, independent of onboarding progress."""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class Principal:
    """An authenticated user as seen by the gate.

    ``role`` is read from the identity provider's metadata when present; the
    gate falls back to the configured default role otherwise.
    """

    user_id: str
    role: str | None = None
    claims: dict = field(default_factory=dict, compare=False, hash=False)
