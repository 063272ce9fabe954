"""
Audit emitter adapter.

Records are handed to the configured emitter only once the surrounding
transaction commits, so a rolled back mutation never shows up in the trail.
Storage and retention belong to whatever sits behind the emitter.
"""
import json
import logging
from dataclasses import asdict, dataclass, field
from functools import partial
from typing import Any, Dict

from django.conf import settings
from django.core.serializers.json import DjangoJSONEncoder
from django.db import transaction
from django.utils.module_loading import import_string

logger = logging.getLogger(__name__)

ENTITY_ORDER = 'ORDER'
ENTITY_ORDER_ITEM = 'ORDER_ITEM'
ENTITY_PAYMENT = 'PAYMENT'
ENTITY_TABLE = 'TABLE'


@dataclass(frozen=True)
class AuditRecord:
    tenant_id: int
    actor_user_id: str
    actor_role: str
    action: str
    entity_type: str
    entity_id: str
    metadata: Dict[str, Any] = field(default_factory=dict)


class LoggingAuditEmitter:
    """Writes each record as one JSON line on the epos.audit logger"""

    def emit(self, record: AuditRecord) -> None:
        logger.info("audit %s", json.dumps(asdict(record), cls=DjangoJSONEncoder, sort_keys=True))


def get_emitter():
    return import_string(settings.AUDIT_EMITTER)()


def emit(actor, action, entity_type, entity_id, metadata=None):
    record = AuditRecord(
        tenant_id=actor.tenant_id,
        actor_user_id=actor.user_id,
        actor_role=actor.role,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id),
        metadata=metadata or {},
    )
    transaction.on_commit(partial(get_emitter().emit, record))
    return record
