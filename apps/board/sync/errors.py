# apps/board/sync/errors.py

"""
Taxonomia de erros do motor de sincronização

- ValidationError: intenção malformada, rejeitada antes de tocar no estado
- ExhaustedPrecision: interno, resolvido com renumeração
- NetworkFailure: transitório, uma nova tentativa automática
- ExternalError: resposta 4xx/5xx da API, sem nova tentativa
"""


class SyncError(Exception):
    """Base de todos os erros do motor"""


class ValidationError(SyncError):
    """MoveIntent inválida (item ou lista desconhecidos)"""


class ItemNotFound(SyncError, LookupError):
    """Item não pertence à coleção consultada"""

    def __init__(self, item_id):
        super().__init__(f"Item {item_id} não encontrado")
        self.item_id = item_id


class ExhaustedPrecision(SyncError):
    """Não existe posição representável entre os dois vizinhos"""

    def __init__(self, prev, next):
        super().__init__(f"Sem espaço entre {prev} e {next}")
        self.prev = prev
        self.next = next


class NetworkFailure(SyncError):
    """Falha de transporte ou timeout ao falar com a API"""


class ExternalError(SyncError):
    """Erro devolvido pela API (4xx/5xx)"""

    def __init__(self, message: str, status: int, code: str = '', details=None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.code = code or str(status)
        self.details = details or {}

    @property
    def is_conflict(self) -> bool:
        return self.status == 409

    @property
    def is_auth(self) -> bool:
        return self.status in (401, 403)

    def __repr__(self):
        return f"ExternalError(status={self.status}, code={self.code!r}, message={self.message!r})"
