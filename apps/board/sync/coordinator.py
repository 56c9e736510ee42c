# apps/board/sync/coordinator.py

"""
Coordenador de movimentos otimistas

Cada item passa por:
    IDLE -> OPTIMISTICALLY_MOVED -> CONFIRMING -> (RECONCILED | SUPERSEDED | ROLLED_BACK)

O passo otimista é síncrono e aparece na interface na hora; a confirmação
roda no event loop. Um novo movimento do mesmo item substitui o anterior:
a resposta antiga é descartada pelo intent_id. As chamadas de rede de um
mesmo item são encadeadas para o servidor recebê-las na ordem emitida.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Hashable, Mapping, Optional, Set, Tuple

from .api import ServerTask, TaskApi
from .collection import Item
from .conf import SyncConfig
from .errors import ExternalError, NetworkFailure, SyncError, ValidationError
from .reconciliation import Decision, FailureAction, Reconciliation, ReconciliationPolicy
from .store import BoardStore, Notice

logger = logging.getLogger(__name__)


class MoveState(Enum):
    IDLE = 'idle'
    OPTIMISTICALLY_MOVED = 'optimistically_moved'
    CONFIRMING = 'confirming'
    RECONCILED = 'reconciled'
    SUPERSEDED = 'superseded'
    ROLLED_BACK = 'rolled_back'


class MoveOutcome(Enum):
    CONFIRMED = 'confirmed'
    CORRECTED = 'corrected'
    CONFLICT = 'conflict'
    ROLLED_BACK = 'rolled_back'
    SUPERSEDED = 'superseded'


@dataclass(frozen=True)
class MoveIntent:
    """Pedido do usuário para levar um item a uma lista/índice"""

    item_id: Hashable
    source_parent_id: Hashable
    target_parent_id: Hashable
    target_index: int
    intent_id: str = field(default_factory=lambda: uuid.uuid4().hex)


@dataclass
class PendingMove:
    """Movimento aplicado localmente aguardando o servidor"""

    intent_id: str
    item_id: Hashable
    optimistic_position: float
    optimistic_parent_id: Hashable
    issued_at: datetime
    previous_parent_id: Hashable
    previous_position: float
    # Vizinhos antes do movimento: localizam o slot antigo mesmo após renumeração
    previous_index: int = 0
    previous_before_id: Optional[Hashable] = None
    previous_after_id: Optional[Hashable] = None
    state: MoveState = MoveState.OPTIMISTICALLY_MOVED
    attempts: int = 0


@dataclass(frozen=True)
class MoveResult:
    """Resultado tipado entregue à interface; falhas de API nunca viram exceção"""

    intent_id: str
    item_id: Hashable
    outcome: MoveOutcome
    parent_id: Optional[Hashable] = None
    position: Optional[float] = None
    error: Optional[SyncError] = None
    notice: Optional[Notice] = None

    @property
    def ok(self) -> bool:
        return self.outcome in (MoveOutcome.CONFIRMED, MoveOutcome.CORRECTED)


_OUTCOMES = {
    Reconciliation.CONFIRM: MoveOutcome.CONFIRMED,
    Reconciliation.ACCEPT_SERVER: MoveOutcome.CORRECTED,
    Reconciliation.SURFACE_CONFLICT: MoveOutcome.CONFLICT,
}

# Campos dos eventos do canal que não fazem parte da tarefa
_EVENT_METADATA = ('previous_list_id', 'usuario', 'timestamp')


class MoveCoordinator:
    """
    Máquina de estados dos movimentos de um board

    Único componente (junto da política de reconciliação) que escreve
    posições no BoardStore.
    """

    def __init__(self, store: BoardStore, api: TaskApi,
                 policy: Optional[ReconciliationPolicy] = None,
                 config: Optional[SyncConfig] = None):
        self.store = store
        self.api = api
        self.config = config or SyncConfig()
        self.policy = policy or ReconciliationPolicy(retries=self.config.network_retries)

        self._pending: Dict[Hashable, PendingMove] = {}
        self._inflight: Dict[Hashable, asyncio.Future] = {}
        self._server_parent: Dict[Hashable, Hashable] = {}
        self._tasks: Set[asyncio.Task] = set()

    # === Consultas ===

    def state_of(self, item_id) -> MoveState:
        pending = self._pending.get(item_id)
        return pending.state if pending else MoveState.IDLE

    def pending_for(self, item_id) -> Optional[PendingMove]:
        return self._pending.get(item_id)

    # === Movimentos ===

    def apply(self, intent: MoveIntent) -> PendingMove:
        """
        Passo otimista (síncrono)

        Valida a intenção, move o item no store e registra o PendingMove.
        Um PendingMove anterior do mesmo item passa a SUPERSEDED.
        """
        self._validate(intent)

        previous = self.store.locate(intent.item_id)
        siblings = self.store.get_snapshot(previous.parent_id)
        previous_index = self.store.index_of(intent.item_id)
        self._server_parent.setdefault(intent.item_id, previous.parent_id)

        superseded = self._pending.get(intent.item_id)
        if superseded is not None:
            superseded.state = MoveState.SUPERSEDED
            logger.debug(f"🔁 Movimento {superseded.intent_id} da tarefa {intent.item_id} substituído")

        moved = self.store.move_item(intent.item_id, intent.target_parent_id, intent.target_index)
        pending = PendingMove(
            intent_id=intent.intent_id,
            item_id=intent.item_id,
            optimistic_position=moved.position,
            optimistic_parent_id=moved.parent_id,
            issued_at=datetime.now(timezone.utc),
            previous_parent_id=previous.parent_id,
            previous_position=previous.position,
            previous_index=previous_index,
            previous_before_id=siblings[previous_index - 1].id if previous_index > 0 else None,
            previous_after_id=siblings[previous_index + 1].id if previous_index + 1 < len(siblings) else None,
        )
        self._pending[intent.item_id] = pending
        return pending

    async def move(self, intent: MoveIntent) -> MoveResult:
        """Aplica o movimento e aguarda a reconciliação"""
        pending = self.apply(intent)
        return await self._confirm(intent, pending)

    def submit(self, intent: MoveIntent) -> asyncio.Task:
        """Aplica o movimento e agenda a confirmação (dispara e esquece)"""
        pending = self.apply(intent)
        task = asyncio.ensure_future(self._confirm(intent, pending))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Aguarda todas as confirmações agendadas com submit()"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    # === Espelhamento de dados do servidor ===

    async def refresh_parent(self, list_id) -> Tuple[Item, ...]:
        """
        Recarrega uma lista do servidor

        Itens com movimento pendente mantêm o posicionamento otimista.
        """
        tasks = await self.api.list_tasks(list_id)

        items = [task.as_item() for task in tasks if task.id not in self._pending]
        for pending in self._pending.values():
            current = self.store.locate(pending.item_id)
            if current is not None and current.parent_id == list_id:
                items.append(current)

        return self.store.load_parent(list_id, items)

    async def load_board(self) -> None:
        """Carrega todas as listas do board e suas tarefas"""
        lists = await self.api.list_lists(self.store.board_id)
        remote_ids = [data['id'] for data in lists]

        for parent_id in self.store.parent_ids():
            if parent_id not in remote_ids:
                self.store.remove_parent(parent_id)

        for list_id in remote_ids:
            await self.refresh_parent(list_id)

        logger.info(f"📋 Board {self.store.board_id} carregado com {len(remote_ids)} listas")

    async def create_task(self, list_id, title: str, **fields) -> Optional[Item]:
        """Cria uma tarefa no fim da lista; falhas viram aviso, não exceção"""
        if not self.store.has_parent(list_id):
            raise ValidationError(f"Lista {list_id} desconhecida")

        snapshot = self.store.get_snapshot(list_id)
        last = snapshot[-1].position if snapshot else None
        position = self.store.allocator.allocate(last, None)

        try:
            created = await self.api.create_task(list_id, title, position=position, **fields)
        except SyncError as exc:
            logger.warning(f"⚠️ Falha ao criar tarefa na lista {list_id}: {exc}")
            self.store.publish(Notice(None, f'Não foi possível criar a tarefa: {exc}', level='error'))
            return None

        if not self.store.has_parent(created.list_id):
            return None
        return self.store.place_item(created.as_item(), created.list_id, created.position)

    async def delete_task(self, task_id) -> bool:
        if task_id in self._pending:
            raise ValidationError(f"Tarefa {task_id} tem movimento pendente")

        try:
            await self.api.delete_task(task_id)
        except SyncError as exc:
            logger.warning(f"⚠️ Falha ao excluir tarefa {task_id}: {exc}")
            self.store.publish(Notice(task_id, f'Não foi possível excluir a tarefa: {exc}', level='error'))
            return False

        self.store.remove_item(task_id)
        return True

    async def create_list(self, title: str, **fields) -> Optional[Dict[str, Any]]:
        """Cria uma lista no fim do board e passa a espelhá-la"""
        try:
            created = await self.api.create_list(self.store.board_id, title, **fields)
        except SyncError as exc:
            logger.warning(f"⚠️ Falha ao criar lista no board {self.store.board_id}: {exc}")
            self.store.publish(Notice(None, f'Não foi possível criar a lista: {exc}', level='error'))
            return None

        self.store.add_parent(created['id'])
        return created

    async def delete_list(self, list_id) -> bool:
        """
        Exclui a lista no servidor e a remove do store

        Movimentos pendentes para a lista são resolvidos quando o servidor
        responder: a reconciliação descarta itens cujo destino sumiu.
        """
        try:
            await self.api.delete_list(list_id)
        except SyncError as exc:
            logger.warning(f"⚠️ Falha ao excluir lista {list_id}: {exc}")
            self.store.publish(Notice(None, f'Não foi possível excluir a lista: {exc}', level='error'))
            return False

        self.store.remove_parent(list_id)
        return True

    # === Eventos do canal do board ===

    async def handle_event(self, event: Mapping[str, Any]) -> bool:
        """
        Aplica um evento repassado pelo BoardConsumer ({'type', 'message'})

        Movimentos e edições de tarefas com PendingMove são ignorados: a
        resposta do próprio movimento decide onde o item fica. Exclusões
        valem sempre. Retorna True se o store mudou.
        """
        kind = event.get('type')
        data = event.get('message') or {}

        if kind in ('task_moved', 'task_created', 'task_updated'):
            return await self._apply_task_event(kind, data)

        if kind == 'task_deleted':
            return self.store.remove_item(data.get('id')) is not None

        if kind == 'list_created':
            if data.get('board_id') != self.store.board_id or self.store.has_parent(data.get('id')):
                return False
            self.store.add_parent(data['id'])
            return True

        if kind == 'list_deleted':
            if not self.store.has_parent(data.get('id')):
                return False
            self.store.remove_parent(data['id'])
            return True

        if kind == 'board_deleted':
            logger.warning(f"⚠️ Board {self.store.board_id} foi excluído")
            for parent_id in self.store.parent_ids():
                self.store.remove_parent(parent_id)
            return True

        # list_updated, list_moved, board_updated: o store não guarda metadados de listas
        logger.debug(f"📨 Evento {kind} sem efeito no store")
        return False

    async def _apply_task_event(self, kind: str, data: Mapping[str, Any]) -> bool:
        task_id = data.get('id')
        if task_id in self._pending:
            logger.debug(f"⏳ Evento {kind} da tarefa {task_id} ignorado: movimento pendente")
            return False

        try:
            task = ServerTask.from_payload({k: v for k, v in data.items() if k not in _EVENT_METADATA})
        except (AttributeError, KeyError, TypeError, ValueError):
            logger.warning(f"⚠️ Evento {kind} ilegível: {data!r}")
            return False

        if not self.store.has_parent(task.list_id):
            # Foi para uma lista que este board não espelha
            return self.store.remove_item(task.id) is not None

        if task.renumbered:
            try:
                await self.refresh_parent(task.list_id)
            except SyncError as exc:
                logger.warning(f"⚠️ Falha ao recarregar lista {task.list_id} renumerada: {exc}")
                self.store.place_item(task.as_item(), task.list_id, task.position)
            return True

        self.store.place_item(task.as_item(), task.list_id, task.position)
        return True

    # === Ciclo de confirmação ===

    def _validate(self, intent: MoveIntent) -> None:
        current_parent = self.store.parent_of(intent.item_id)
        if current_parent is None:
            raise ValidationError(f"Tarefa {intent.item_id} desconhecida")
        if not self.store.has_parent(intent.target_parent_id):
            raise ValidationError(f"Lista de destino {intent.target_parent_id} desconhecida")
        if intent.source_parent_id != current_parent:
            raise ValidationError(
                f"Tarefa {intent.item_id} está na lista {current_parent}, não em {intent.source_parent_id}"
            )
        if isinstance(intent.target_index, bool) or not isinstance(intent.target_index, int) \
                or intent.target_index < 0:
            raise ValidationError(f"Índice de destino inválido: {intent.target_index!r}")

    async def _confirm(self, intent: MoveIntent, pending: PendingMove) -> MoveResult:
        previous_call = self._inflight.get(intent.item_id)
        call = asyncio.ensure_future(self._send(intent, pending, previous_call))
        self._inflight[intent.item_id] = call
        try:
            response, error = await call
        finally:
            if self._inflight.get(intent.item_id) is call:
                del self._inflight[intent.item_id]

        return await self._settle(pending, response, error)

    async def _send(self, intent: MoveIntent, pending: PendingMove,
                    previous_call: Optional[asyncio.Future]) -> Tuple[Optional[ServerTask], Optional[SyncError]]:
        """Envia o movimento; nunca levanta SyncError, devolve (resposta, erro)"""
        if previous_call is not None:
            await asyncio.wait([previous_call])

        timeout = self.config.move_timeout
        attempt = 0
        while True:
            attempt += 1
            pending.attempts = attempt
            if pending.state is not MoveState.SUPERSEDED:
                pending.state = MoveState.CONFIRMING

            try:
                response = await asyncio.wait_for(
                    self.api.move_task(
                        intent.item_id,
                        target_list_id=intent.target_parent_id,
                        target_index=intent.target_index,
                        source_list_id=self._server_parent.get(intent.item_id, pending.previous_parent_id),
                        intent_id=intent.intent_id,
                    ),
                    timeout,
                )
            except asyncio.TimeoutError:
                error = NetworkFailure(f"Sem resposta em {timeout}s")
            except SyncError as exc:
                error = exc
            except Exception as exc:
                # Nenhuma falha da API passa do coordenador: vira rollback
                logger.exception(f"❌ Falha inesperada ao mover tarefa {intent.item_id}")
                error = ExternalError(f"Resposta inesperada da API: {exc!r}", 0, 'INVALID_RESPONSE')
            else:
                self._server_parent[intent.item_id] = response.list_id
                return response, None

            action = self.policy.classify_failure(error, attempt)
            if action is FailureAction.RETRY and pending.state is not MoveState.SUPERSEDED:
                logger.info(f"🔄 Nova tentativa do movimento {intent.intent_id}: {error}")
                continue

            if action is FailureAction.CONFLICT:
                server_task = self.policy.conflict_task(error)
                if server_task is not None:
                    self._server_parent[intent.item_id] = server_task.list_id
            return None, error

    async def _settle(self, pending: PendingMove, response: Optional[ServerTask],
                      error: Optional[SyncError]) -> MoveResult:
        item_id = pending.item_id
        latest = self._pending.get(item_id)

        if latest is not pending:
            pending.state = MoveState.SUPERSEDED
            logger.debug(f"🗑️ Resposta do movimento {pending.intent_id} descartada (substituído)")
            return MoveResult(pending.intent_id, item_id, MoveOutcome.SUPERSEDED, error=error)

        try:
            if error is None:
                return await self._reconcile(pending, latest, response)
            return self._fail(pending, error)
        finally:
            if self._pending.get(item_id) is pending:
                del self._pending[item_id]
            if item_id not in self._pending:
                self._server_parent.pop(item_id, None)

    async def _reconcile(self, pending: PendingMove, latest: PendingMove, response: ServerTask) -> MoveResult:
        decision = self.policy.decide(pending, latest, response, self.store.locate(pending.item_id))
        item = self.policy.apply(self.store, decision, response)
        pending.state = MoveState.RECONCILED

        if decision.action is Reconciliation.SURFACE_CONFLICT:
            logger.warning(f"⚠️ Tarefa {pending.item_id} foi para a lista {response.list_id} no servidor")
        elif decision.action is Reconciliation.ACCEPT_SERVER:
            logger.debug(f"📐 Posição da tarefa {pending.item_id} corrigida para {response.position}")

        if response.renumbered and self.store.has_parent(response.list_id):
            try:
                await self.refresh_parent(response.list_id)
            except SyncError as exc:
                logger.warning(f"⚠️ Falha ao recarregar lista {response.list_id} renumerada: {exc}")

        current = item or self.store.locate(pending.item_id)
        return MoveResult(
            pending.intent_id,
            pending.item_id,
            _OUTCOMES.get(decision.action, MoveOutcome.CONFIRMED),
            parent_id=current.parent_id if current else response.list_id,
            position=current.position if current else response.position,
            notice=decision.notice,
        )

    def _fail(self, pending: PendingMove, error: SyncError) -> MoveResult:
        action = self.policy.classify_failure(error, pending.attempts)
        pending.state = MoveState.ROLLED_BACK

        if action is FailureAction.CONFLICT:
            server_task = self.policy.conflict_task(error)
            if server_task is not None:
                notice = Notice(pending.item_id, 'A tarefa foi movida para outra lista por outra pessoa',
                                level='warning')
                decision = Decision(Reconciliation.SURFACE_CONFLICT, pending.item_id,
                                    server_task.list_id, server_task.position, notice)
                item = self.policy.apply(self.store, decision, server_task)
                logger.warning(f"⚠️ Conflito ao mover tarefa {pending.item_id}: {error}")
                return MoveResult(
                    pending.intent_id, pending.item_id, MoveOutcome.CONFLICT,
                    parent_id=item.parent_id if item else None,
                    position=item.position if item else None,
                    error=error, notice=notice,
                )

        return self._rollback(pending, error)

    def _restore(self, pending: PendingMove, current: Item, notice: Notice) -> Item:
        """
        Devolve o item ao slot que ocupava antes do movimento

        O slot é achado pelos vizinhos de então. A posição antiga só é
        reaproveitada se ainda cair dentro do slot; se a lista foi
        renumerada nesse meio tempo, uma posição nova é alocada.
        """
        siblings = [item for item in self.store.get_snapshot(pending.previous_parent_id)
                    if item.id != pending.item_id]
        sibling_ids = [item.id for item in siblings]

        if pending.previous_before_id in sibling_ids:
            index = sibling_ids.index(pending.previous_before_id) + 1
        elif pending.previous_after_id in sibling_ids:
            index = sibling_ids.index(pending.previous_after_id)
        else:
            index = min(pending.previous_index, len(siblings))

        prev = siblings[index - 1].position if index > 0 else None
        next = siblings[index].position if index < len(siblings) else None
        if (prev is None or prev < pending.previous_position) and \
                (next is None or pending.previous_position < next):
            return self.store.place_item(current, pending.previous_parent_id,
                                         pending.previous_position, notice=notice)

        logger.debug(f"🔢 Posição {pending.previous_position} de {pending.item_id} não cabe mais no slot {index}")
        return self.store.move_item(pending.item_id, pending.previous_parent_id, index, notice=notice)

    def _rollback(self, pending: PendingMove, error: SyncError) -> MoveResult:
        """Volta o item para onde estava imediatamente antes deste movimento"""
        if isinstance(error, NetworkFailure):
            message = 'Falha de conexão: o movimento foi desfeito'
        else:
            message = f'Movimento recusado: {error}'
        notice = Notice(pending.item_id, message, level='error')

        logger.warning(f"↩️ Desfazendo movimento {pending.intent_id} da tarefa {pending.item_id}: {error!r}")

        current = self.store.locate(pending.item_id)
        if current is None:
            self.store.publish(notice)
            return MoveResult(pending.intent_id, pending.item_id, MoveOutcome.ROLLED_BACK,
                              error=error, notice=notice)

        if not self.store.has_parent(pending.previous_parent_id):
            self.store.remove_item(pending.item_id, notice=notice)
            return MoveResult(pending.intent_id, pending.item_id, MoveOutcome.ROLLED_BACK,
                              error=error, notice=notice)

        restored = self._restore(pending, current, notice)
        return MoveResult(
            pending.intent_id, pending.item_id, MoveOutcome.ROLLED_BACK,
            parent_id=restored.parent_id, position=restored.position,
            error=error, notice=notice,
        )
