"""Eligibility filtering for commit events."""

from typing import Optional

from .logging_setup import get_logger
from .metrics import commits_rejected_total
from .types import CommitEventBody, RepoOp

logger = get_logger(__name__)


class CommitFilter:
    """Decide whether a commit is worth resolving.

    Only the first operation of a commit is considered. Rejections are normal,
    high-volume outcomes and are counted rather than logged.
    """

    def __init__(self):
        # Statistics
        self.total_commits_processed = 0
        self.commits_accepted = 0
        self.commits_rejected = 0
        self.rejection_reasons = {
            'no_ops': 0,
            'too_big': 0,
            'delete': 0,
            'no_cid': 0,
        }

    def allow(self, body: CommitEventBody) -> bool:
        """Return True when ``body`` should go on to archive extraction."""
        self.total_commits_processed += 1

        op = self.first_op(body)
        if op is None:
            return self._reject('no_ops')

        if body.too_big:
            return self._reject('too_big')

        if op.action == 'delete':
            return self._reject('delete')

        if not op.cid:
            return self._reject('no_cid')

        self.commits_accepted += 1
        return True

    @staticmethod
    def first_op(body: CommitEventBody) -> Optional[RepoOp]:
        return body.ops[0] if body.ops else None

    def _reject(self, reason: str) -> bool:
        """Record a commit rejection."""
        self.commits_rejected += 1
        self.rejection_reasons[reason] += 1
        commits_rejected_total.labels(reason=reason).inc()
        return False

    def get_stats(self) -> dict:
        """Get filtering statistics."""
        acceptance_rate = (
            self.commits_accepted / self.total_commits_processed
            if self.total_commits_processed > 0 else 0
        )

        return {
            'total_processed': self.total_commits_processed,
            'accepted': self.commits_accepted,
            'rejected': self.commits_rejected,
            'acceptance_rate': acceptance_rate,
            'rejection_reasons': self.rejection_reasons.copy(),
        }

    def reset_stats(self) -> None:
        """Reset filtering statistics."""
        self.total_commits_processed = 0
        self.commits_accepted = 0
        self.commits_rejected = 0
        self.rejection_reasons = {key: 0 for key in self.rejection_reasons}
        logger.debug("commit_filter_stats_reset")
