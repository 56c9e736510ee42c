# apps/board/sync/__init__.py

"""
Motor de posições e reconciliação de movimentos do board

Componentes:
- PositionAllocator: posições densas entre vizinhos e renumeração
- OrderedCollection: índice ordenado dos itens de uma lista
- BoardStore: agregado das listas de um board, com assinaturas
- MoveCoordinator: movimentos otimistas, confirmação e rollback
- ReconciliationPolicy: como aceitar ou contestar a resposta do servidor
"""

from .api import ServerTask, TaskApi
from .client import TaskApiClient
from .collection import Item, OrderedCollection
from .conf import SyncConfig
from .coordinator import MoveCoordinator, MoveIntent, MoveOutcome, MoveResult, MoveState, PendingMove
from .errors import (
    ExhaustedPrecision,
    ExternalError,
    ItemNotFound,
    NetworkFailure,
    SyncError,
    ValidationError,
)
from .positions import Position, PositionAllocator
from .reconciliation import Decision, FailureAction, Reconciliation, ReconciliationPolicy
from .store import BoardChange, BoardStore, Notice

__all__ = [
    'BoardChange', 'BoardStore', 'Decision', 'ExhaustedPrecision', 'ExternalError',
    'FailureAction', 'Item', 'ItemNotFound', 'MoveCoordinator', 'MoveIntent', 'MoveOutcome',
    'MoveResult', 'MoveState', 'NetworkFailure', 'Notice', 'OrderedCollection', 'PendingMove',
    'Position', 'PositionAllocator', 'Reconciliation', 'ReconciliationPolicy', 'ServerTask',
    'SyncConfig', 'SyncError', 'TaskApi', 'TaskApiClient', 'ValidationError',
]
