"""
Push failure classification.

A push that hg rejects because it would create a new remote head means
someone else published first; rebasing and pushing again can fix that.
Every other failure (auth, network, unknown branch, ...) is final.
"""

from enum import Enum

# hg's non-fast-forward message, e.g.
# "abort: push creates new remote head 5a2f41c0c2a1 on branch 'default'!"
NEW_REMOTE_HEAD_PREFIX = "abort: push creates new remote head"


class PushOutcome(Enum):
    """How a failed push should be handled."""
    CONFLICT = "conflict"
    FATAL = "fatal"


def classify_push_failure(output: str) -> PushOutcome:
    for line in (output or "").splitlines():
        if line.lstrip().startswith(NEW_REMOTE_HEAD_PREFIX):
            return PushOutcome.CONFLICT
    return PushOutcome.FATAL
