# apps/board/sync/reconciliation.py

"""
Política de reconciliação entre o estado otimista e o servidor

Decisões possíveis para uma resposta de movimento:
- IGNORE: resposta sem PendingMove correspondente (substituída ou duplicada)
- CONFIRM: servidor concorda com lista e posição
- ACCEPT_SERVER: mesma lista, posição diferente -> sobrescreve e reordena
- SURFACE_CONFLICT: servidor colocou a tarefa em outra lista -> avisa o usuário
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Hashable, Optional

from .api import ServerTask
from .collection import Item
from .errors import ExternalError, NetworkFailure, SyncError
from .store import BoardStore, Notice

logger = logging.getLogger(__name__)


class Reconciliation(Enum):
    IGNORE = 'ignore'
    CONFIRM = 'confirm'
    ACCEPT_SERVER = 'accept_server'
    SURFACE_CONFLICT = 'surface_conflict'


class FailureAction(Enum):
    RETRY = 'retry'
    ROLLBACK = 'rollback'
    CONFLICT = 'conflict'


@dataclass(frozen=True)
class Decision:
    action: Reconciliation
    item_id: Hashable
    parent_id: Optional[Hashable] = None
    position: Optional[float] = None
    notice: Optional[Notice] = None


class ReconciliationPolicy:
    """Decide e aplica a reconciliação de um movimento confirmado"""

    def __init__(self, retries: int = 1):
        self.retries = retries

    def decide(self, pending, latest, response: ServerTask, current: Optional[Item] = None) -> Decision:
        """
        Compara a resposta do servidor com o estado otimista

        pending é o PendingMove da resposta, latest o PendingMove vigente
        para o item e current o Item como está agora no store.
        """
        if pending is None or latest is None or pending.intent_id != latest.intent_id:
            return Decision(Reconciliation.IGNORE, response.id)

        if response.id != pending.item_id:
            logger.warning(f"⚠️ Resposta da tarefa {response.id} não corresponde ao movimento de {pending.item_id}")
            return Decision(Reconciliation.IGNORE, response.id)

        client_parent = current.parent_id if current else pending.optimistic_parent_id
        client_position = current.position if current else pending.optimistic_position

        if response.list_id != client_parent:
            notice = Notice(
                response.id,
                'A tarefa foi movida para outra lista por outra pessoa',
                level='warning',
            )
            return Decision(Reconciliation.SURFACE_CONFLICT, response.id,
                            response.list_id, response.position, notice)

        if response.position != client_position:
            return Decision(Reconciliation.ACCEPT_SERVER, response.id, response.list_id, response.position)

        return Decision(Reconciliation.CONFIRM, response.id, response.list_id, response.position)

    def apply(self, store: BoardStore, decision: Decision, response: ServerTask) -> Optional[Item]:
        """Aplica a decisão no store; retorna o Item resultante quando há mudança"""
        if decision.action in (Reconciliation.IGNORE, Reconciliation.CONFIRM):
            return None

        if not store.has_parent(decision.parent_id):
            # Lista de destino não pertence a este board (ou foi excluída durante o movimento)
            store.remove_item(decision.item_id, notice=decision.notice)
            return None

        current = store.locate(decision.item_id)
        item = response.as_item()
        if current is not None and not response.payload:
            item = Item(item.id, item.parent_id, item.position, current.payload)

        return store.place_item(item, decision.parent_id, decision.position, notice=decision.notice)

    def classify_failure(self, error: SyncError, attempt: int) -> FailureAction:
        """Nova tentativa só para falha de rede, e no máximo `retries` vezes"""
        if isinstance(error, NetworkFailure) and attempt <= self.retries:
            return FailureAction.RETRY
        if isinstance(error, ExternalError) and error.is_conflict:
            return FailureAction.CONFLICT
        return FailureAction.ROLLBACK

    def conflict_task(self, error: ExternalError) -> Optional[ServerTask]:
        """Extrai a tarefa autoritativa que acompanha um 409"""
        data = (error.details or {}).get('task')
        if not data:
            return None
        try:
            return ServerTask.from_payload(data)
        except (KeyError, TypeError, ValueError):
            logger.warning(f"⚠️ Detalhes de conflito ilegíveis: {data!r}")
            return None
