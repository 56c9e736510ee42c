# apps/board/sync/store.py

import logging
from dataclasses import dataclass
from typing import Callable, Dict, FrozenSet, Hashable, Iterable, List, Optional, Tuple

from .collection import Item, OrderedCollection
from .errors import ItemNotFound
from .positions import Position, PositionAllocator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Notice:
    """Aviso visível ao usuário (conflito, rollback...)"""

    item_id: Hashable
    message: str
    level: str = 'info'


@dataclass(frozen=True)
class BoardChange:
    """Notificação entregue aos assinantes a cada mudança confirmada"""

    version: int
    parent_ids: FrozenSet[Hashable]
    notice: Optional[Notice] = None


Listener = Callable[[BoardChange], None]


class BoardStore:
    """
    Agregado com todas as listas de um board

    Ponto único de mutação observável: toda escrita passa por aqui e
    notifica os assinantes de forma síncrona, então qualquer leitura
    depois de uma mutação já enxerga o novo estado.
    """

    def __init__(self, board_id: Hashable, allocator: Optional[PositionAllocator] = None):
        self.board_id = board_id
        self.allocator = allocator or PositionAllocator()
        self.version = 0
        self._parents: Dict[Hashable, OrderedCollection] = {}
        self._locations: Dict[Hashable, Hashable] = {}
        self._listeners: List[Listener] = []

    def __repr__(self):
        return f"BoardStore(board_id={self.board_id!r}, parents={len(self._parents)}, version={self.version})"

    # === Assinaturas ===

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Registra um listener e retorna a função que o remove"""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # === Leitura ===

    def parent_ids(self) -> Tuple[Hashable, ...]:
        return tuple(self._parents)

    def has_parent(self, parent_id) -> bool:
        return parent_id in self._parents

    def collection(self, parent_id) -> OrderedCollection:
        try:
            return self._parents[parent_id]
        except KeyError:
            raise KeyError(f"Lista {parent_id} não carregada no board {self.board_id}") from None

    def get_snapshot(self, parent_id) -> Tuple[Item, ...]:
        return self.collection(parent_id).to_ordered_sequence()

    def parent_of(self, item_id) -> Optional[Hashable]:
        return self._locations.get(item_id)

    def locate(self, item_id) -> Optional[Item]:
        parent_id = self._locations.get(item_id)
        if parent_id is None:
            return None
        return self._parents[parent_id].get(item_id)

    def index_of(self, item_id) -> int:
        parent_id = self._locations.get(item_id)
        if parent_id is None:
            raise ItemNotFound(item_id)
        return self._parents[parent_id].index_of(item_id)

    # === Mutações ===

    def add_parent(self, parent_id) -> OrderedCollection:
        if parent_id not in self._parents:
            self._parents[parent_id] = OrderedCollection(parent_id, self.allocator)
            self._commit({parent_id})
        return self._parents[parent_id]

    def load_parent(self, parent_id, items: Iterable[Item]) -> Tuple[Item, ...]:
        """
        Espelha o conteúdo de uma lista vindo do servidor

        Itens que estavam em outra lista localmente são realocados para
        esta; itens que sumiram da lista são descartados.
        """
        collection = self._parents.get(parent_id)
        if collection is None:
            collection = self._parents[parent_id] = OrderedCollection(parent_id, self.allocator)

        changed = {parent_id}
        for item in collection:
            self._locations.pop(item.id, None)
        collection.clear()

        for item in items:
            previous = self._locations.get(item.id)
            if previous is not None and previous != parent_id:
                self._parents[previous].remove(item.id)
                changed.add(previous)
            collection.place(item)
            self._locations[item.id] = parent_id

        self._commit(changed)
        return collection.to_ordered_sequence()

    def remove_parent(self, parent_id) -> None:
        collection = self._parents.pop(parent_id, None)
        if collection is None:
            return
        for item in collection:
            self._locations.pop(item.id, None)
        self._commit({parent_id})

    def move_item(self, item_id, target_parent_id, index: int, notice: Optional[Notice] = None) -> Item:
        """
        Movimento otimista: remove da origem e insere no índice do destino

        Se a inserção falhar o item volta para a origem na mesma posição.
        """
        target = self.collection(target_parent_id)
        source_id = self._locations.get(item_id)
        if source_id is None:
            raise ItemNotFound(item_id)

        source = self._parents[source_id]
        item = source.remove(item_id)
        try:
            target.insert_at(item, index)
        except Exception:
            source.place(item)
            raise
        self._locations[item_id] = target_parent_id

        self._commit({source_id, target_parent_id}, notice)
        return target.get(item_id)

    def place_item(self, item: Item, parent_id, position: Optional[Position] = None,
                   notice: Optional[Notice] = None) -> Item:
        """Posicionamento autoritativo (servidor ou rollback)"""
        target = self.collection(parent_id)
        changed = {parent_id}

        source_id = self._locations.get(item.id)
        if source_id is not None and source_id != parent_id:
            self._parents[source_id].remove(item.id)
            changed.add(source_id)

        target.place(item, position)
        self._locations[item.id] = parent_id

        self._commit(changed, notice)
        return target.get(item.id)

    def remove_item(self, item_id, notice: Optional[Notice] = None) -> Optional[Item]:
        parent_id = self._locations.pop(item_id, None)
        if parent_id is None:
            if notice is not None:
                self.publish(notice)
            return None

        item = self._parents[parent_id].remove(item_id)
        self._commit({parent_id}, notice)
        return item

    def publish(self, notice: Notice) -> None:
        """Entrega um aviso sem alterar nenhuma lista"""
        self._commit(set(), notice)

    def _commit(self, parent_ids, notice: Optional[Notice] = None) -> None:
        self.version += 1
        change = BoardChange(self.version, frozenset(parent_ids), notice)

        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception:
                logger.exception(f"❌ Erro em listener do board {self.board_id}")
