import logging

from django.conf import settings
from django.db import transaction
from django.utils.module_loading import import_string

logger = logging.getLogger(__name__)


class TrustIndexUpdater:
    """Receives trust index deltas. The scoring policy lives behind this interface."""

    def apply_delta(self, user_id, delta, reason):
        raise NotImplementedError


class CeleryTrustIndexUpdater(TrustIndexUpdater):
    def apply_delta(self, user_id, delta, reason):
        from .tasks import apply_trust_index_delta

        apply_trust_index_delta.delay(user_id, delta, reason)


def get_trust_index_updater():
    return import_string(settings.TRUST_INDEX_UPDATER)()


def emit_trust_delta(user_id, reason):
    """Schedule a delta for ``reason`` once the surrounding transaction commits."""
    delta = settings.TRUST_INDEX_DELTAS.get(reason)
    if not delta:
        return
    logger.info("Queueing trust index delta %+d for user %s (%s)", delta, user_id, reason)
    transaction.on_commit(
        lambda: get_trust_index_updater().apply_delta(user_id, delta, reason)
    )
