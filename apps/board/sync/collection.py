# apps/board/sync/collection.py

import logging
from bisect import bisect_left, bisect_right, insort
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Hashable, Iterable, Iterator, List, Mapping, Optional, Tuple

from .errors import ExhaustedPrecision, ItemNotFound
from .positions import Position, PositionAllocator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Item:
    """
    Tarefa vista pelo motor

    payload é opaco (título, descrição, prazo...). A coleção substitui
    o Item inteiro ao reposicionar, nunca o altera no lugar.
    """

    id: Hashable
    parent_id: Hashable
    position: Position
    payload: Mapping[str, Any] = field(default_factory=dict)


def _sort_key(item: Item) -> Tuple[float, str]:
    # Desempate por id só importa se duas posições colidirem
    return (item.position, str(item.id))


class OrderedCollection:
    """
    Índice ordenado por posição dos itens de uma lista

    Toda operação deixa a sequência ordenada ao retornar; não há estado
    intermediário observável porque as mutações são síncronas.
    """

    def __init__(self, parent_id: Hashable, allocator: Optional[PositionAllocator] = None,
                 items: Iterable[Item] = ()):
        self.parent_id = parent_id
        self.allocator = allocator or PositionAllocator()
        self._items: List[Item] = []
        self._by_id: Dict[Hashable, Item] = {}
        self._positions: Dict[Position, Hashable] = {}

        for item in items:
            self.place(item)

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, item_id) -> bool:
        return item_id in self._by_id

    def __iter__(self) -> Iterator[Item]:
        return iter(tuple(self._items))

    def __repr__(self):
        return f"OrderedCollection(parent_id={self.parent_id!r}, items={len(self._items)})"

    # === Consultas ===

    def get(self, item_id) -> Item:
        try:
            return self._by_id[item_id]
        except KeyError:
            raise ItemNotFound(item_id) from None

    def index_of(self, item_id) -> int:
        """Índice do item na ordem de exibição"""
        item = self.get(item_id)
        return bisect_left(self._items, _sort_key(item), key=_sort_key)

    def to_ordered_sequence(self) -> Tuple[Item, ...]:
        return tuple(self._items)

    def neighbors(self, index: int) -> Tuple[Optional[Position], Optional[Position]]:
        """Posições vizinhas de um slot de inserção (índice já limitado)"""
        prev = self._items[index - 1].position if index > 0 else None
        next = self._items[index].position if index < len(self._items) else None
        return prev, next

    # === Mutações ===

    def insert_at(self, item: Item, index: int) -> Position:
        """
        Insere o item no índice pedido e retorna a posição atribuída

        Índices fora do intervalo são limitados às pontas. Se não houver
        espaço entre os vizinhos, renumera a coleção e tenta uma vez mais.
        """
        if item.id in self._by_id:
            raise ValueError(f"Item {item.id} já está na lista {self.parent_id}")

        index = max(0, min(index, len(self._items)))
        try:
            position = self.allocator.allocate(*self.neighbors(index))
        except ExhaustedPrecision as exc:
            logger.info(f"🔢 Lista {self.parent_id} sem espaço entre {exc.prev} e {exc.next} - renumerando")
            self.renumber()
            position = self.allocator.allocate(*self.neighbors(index))

        self._insert(replace(item, parent_id=self.parent_id, position=position))
        return position

    def place(self, item: Item, position: Optional[Position] = None) -> Position:
        """
        Coloca o item numa posição já decidida (servidor ou rollback)

        Se o item já estiver na coleção ele é reposicionado. Se outro item
        ocupar a mesma posição, o item vai para o slot logo depois dele
        com uma posição nova, preservando a unicidade.
        """
        position = float(item.position if position is None else position)
        if item.id in self._by_id:
            self.remove(item.id)

        occupant = self._positions.get(position)
        if occupant is not None:
            index = bisect_right(self._items, (position, chr(0x10FFFF)), key=_sort_key)
            logger.warning(
                f"⚠️ Posição {position} já ocupada por {occupant} na lista {self.parent_id} - realocando {item.id}"
            )
            return self.insert_at(item, index)

        self._insert(replace(item, parent_id=self.parent_id, position=position))
        return position

    def remove(self, item_id) -> Item:
        item = self.get(item_id)
        del self._items[self.index_of(item_id)]
        del self._by_id[item_id]
        self._positions.pop(item.position, None)
        return item

    def renumber(self) -> Dict[Hashable, Position]:
        """Reatribui posições canônicas sem mudar a ordem relativa"""
        mapping = self.allocator.renumber(self._items)
        renumbered = [replace(item, position=mapping[item.id]) for item in self._items]

        self._items = renumbered
        self._by_id = {item.id: item for item in renumbered}
        self._positions = {item.position: item.id for item in renumbered}
        return mapping

    def clear(self) -> None:
        self._items.clear()
        self._by_id.clear()
        self._positions.clear()

    def _insert(self, item: Item) -> None:
        insort(self._items, item, key=_sort_key)
        self._by_id[item.id] = item
        self._positions[item.position] = item.id
