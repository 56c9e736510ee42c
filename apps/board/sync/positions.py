# apps/board/sync/positions.py

"""
Alocação de posições densas para ordenação de tarefas

Posições são floats. Inserir entre dois vizinhos usa o ponto médio,
sem renumerar os irmãos. Quando o espaço entre vizinhos fica menor que
min_gap, allocate() levanta ExhaustedPrecision e quem chamou deve
renumerar a coleção e tentar de novo (uma única vez).

Exemplo:
    [A@1.0, B@2.0, C@3.0] + X entre A e B -> X@1.5
"""

from typing import Dict, Hashable, Iterable, Optional

from .errors import ExhaustedPrecision

Position = float


class PositionAllocator:
    """Calcula posições entre vizinhos e renumera coleções inteiras"""

    def __init__(self, stride: float = 1.0, min_gap: float = 1e-6):
        if stride <= 0:
            raise ValueError("stride deve ser positivo")
        # Depois de renumerar, vizinhos ficam a um stride: precisa caber um ponto médio
        if min_gap <= 0 or 2 * min_gap >= stride:
            raise ValueError("min_gap deve ser positivo e menor que metade do stride")
        self.stride = float(stride)
        self.min_gap = float(min_gap)

    @classmethod
    def from_config(cls, config):
        return cls(stride=config.position_stride, min_gap=config.min_position_gap)

    def allocate(self, prev: Optional[Position], next: Optional[Position]) -> Position:
        """
        Retorna uma posição estritamente entre prev e next

        Nas bordas (prev ou next ausente) anda um stride para fora.
        """
        if prev is None and next is None:
            return self.stride
        if prev is None:
            return float(next) - self.stride
        if next is None:
            return float(prev) + self.stride

        prev, next = float(prev), float(next)
        if next - prev < 2 * self.min_gap:
            raise ExhaustedPrecision(prev, next)

        middle = prev + (next - prev) / 2
        if not prev < middle < next:
            raise ExhaustedPrecision(prev, next)
        return middle

    def renumber(self, items: Iterable) -> Dict[Hashable, Position]:
        """
        Atribui posições canônicas (múltiplos do stride) na ordem recebida

        Função pura: só depende da ordem dos itens, nunca a altera.
        Aceita Items (atributo id) ou os próprios identificadores.
        """
        return {
            getattr(item, 'id', item): self.stride * idx
            for idx, item in enumerate(items, start=1)
        }
