# apps/board/sync/conf.py

from dataclasses import dataclass


@dataclass(frozen=True)
class SyncConfig:
    """
    Parâmetros do motor de sincronização

    Os valores padrão espelham os de config/settings/base.py;
    from_settings() lê as configurações FLUXO_* do Django.
    """

    position_stride: float = 1.0
    min_position_gap: float = 1e-6
    move_timeout: float = 10.0
    network_retries: int = 1

    @classmethod
    def from_settings(cls):
        from django.conf import settings

        return cls(
            position_stride=float(getattr(settings, 'FLUXO_POSITION_STRIDE', cls.position_stride)),
            min_position_gap=float(getattr(settings, 'FLUXO_MIN_POSITION_GAP', cls.min_position_gap)),
            move_timeout=float(getattr(settings, 'FLUXO_MOVE_TIMEOUT', cls.move_timeout)),
            network_retries=int(getattr(settings, 'FLUXO_MOVE_RETRIES', cls.network_retries)),
        )
