# apps/board/sync/api.py

"""
Contrato da API de Tarefas/Listas consumida pelo motor

Toda chamada que altera uma tarefa devolve list_id e position
autoritativos, usados pela reconciliação.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Hashable, List, Mapping, Optional, Protocol

from .collection import Item

_CAMPOS_POSICIONAIS = ('id', 'list_id', 'position', 'renumbered')


@dataclass(frozen=True)
class ServerTask:
    """Tarefa como o servidor a descreve"""

    id: Hashable
    list_id: Hashable
    position: float
    payload: Mapping[str, Any] = field(default_factory=dict)
    renumbered: bool = False

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> 'ServerTask':
        return cls(
            id=data['id'],
            list_id=data['list_id'],
            position=float(data['position']),
            payload={k: v for k, v in data.items() if k not in _CAMPOS_POSICIONAIS},
            renumbered=bool(data.get('renumbered', False)),
        )

    def as_item(self) -> Item:
        return Item(self.id, self.list_id, self.position, dict(self.payload))


class TaskApi(Protocol):
    """Operações que o MoveCoordinator usa do colaborador externo"""

    async def list_lists(self, board_id) -> List[Dict[str, Any]]: ...

    async def create_list(self, board_id, title: str, **fields) -> Dict[str, Any]: ...

    async def update_list(self, list_id, **fields) -> Dict[str, Any]: ...

    async def move_list(self, list_id, target_index: int) -> Dict[str, Any]: ...

    async def delete_list(self, list_id) -> None: ...

    async def list_tasks(self, list_id) -> List[ServerTask]: ...

    async def get_task(self, task_id) -> ServerTask: ...

    async def create_task(self, list_id, title: str, position: Optional[float] = None,
                          **fields) -> ServerTask: ...

    async def move_task(self, task_id, target_list_id, target_index: int,
                        source_list_id=None, intent_id: Optional[str] = None) -> ServerTask: ...

    async def update_task(self, task_id, **fields) -> ServerTask: ...

    async def delete_task(self, task_id) -> None: ...
