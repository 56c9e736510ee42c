# apps/board/consumers.py

import json
import logging

from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncWebsocketConsumer
from django.utils import timezone

from apps.core.models import Board
from apps.core.permissions import FluxoPermissions

logger = logging.getLogger(__name__)


class BoardConsumer(AsyncWebsocketConsumer):
    """
    Consumer WebSocket do board

    Repassa aos clientes os eventos publicados pelos serviços do board
    (task_*, list_* e board_*). O cliente entrega cada evento a
    MoveCoordinator.handle_event, que atualiza o BoardStore.
    """

    async def connect(self):
        """
        Conecta usuário ao grupo do board
        Verifica permissões antes de aceitar conexão
        """
        self.board_id = self.scope['url_route']['kwargs']['board_id']
        self.board_group_name = f'board_{self.board_id}'
        self.user = self.scope.get('user')

        if self.user is None or not self.user.is_authenticated:
            logger.warning("❌ Conexão WebSocket rejeitada - usuário não autenticado")
            await self.close()
            return

        if not await self.check_board_access():
            logger.warning(f"❌ Conexão WebSocket rejeitada - {self.user.username} sem acesso ao board {self.board_id}")
            await self.close()
            return

        await self.channel_layer.group_add(self.board_group_name, self.channel_name)
        await self.accept()

        logger.info(f"✅ WebSocket conectado - {self.user.username} no board {self.board_id}")

    async def disconnect(self, close_code):
        if hasattr(self, 'board_group_name'):
            await self.channel_layer.group_discard(self.board_group_name, self.channel_name)

        logger.info(f"🔌 WebSocket desconectado do board {self.board_id} ({close_code})")

    async def receive(self, text_data=None, bytes_data=None):
        """
        Único comando aceito é o heartbeat; mutações passam pela API HTTP
        """
        try:
            data = json.loads(text_data or '')
        except json.JSONDecodeError:
            logger.error(f"❌ JSON inválido recebido via WebSocket de {self.user.username}")
            return

        if isinstance(data, dict) and data.get('type') == 'ping':
            await self.send(text_data=json.dumps({
                'type': 'pong',
                'timestamp': timezone.now().isoformat()
            }))

    # === Handlers dos eventos do grupo ===

    async def task_moved(self, event):
        await self._repassar('task_moved', event)

    async def task_created(self, event):
        await self._repassar('task_created', event)

    async def task_updated(self, event):
        await self._repassar('task_updated', event)

    async def task_deleted(self, event):
        await self._repassar('task_deleted', event)

    async def list_created(self, event):
        await self._repassar('list_created', event)

    async def list_updated(self, event):
        await self._repassar('list_updated', event)

    async def list_moved(self, event):
        await self._repassar('list_moved', event)

    async def list_deleted(self, event):
        await self._repassar('list_deleted', event)

    async def board_updated(self, event):
        await self._repassar('board_updated', event)

    async def board_deleted(self, event):
        await self._repassar('board_deleted', event)

    # === Métodos auxiliares ===

    async def _repassar(self, tipo, event):
        await self.send(text_data=json.dumps({
            'type': tipo,
            'message': event['message']
        }))

    @database_sync_to_async
    def check_board_access(self):
        """
        Verifica se usuário tem acesso ao board
        """
        try:
            board = Board.objects.get(id=self.board_id, ativo=True)
        except Board.DoesNotExist:
            return False
        return FluxoPermissions.tem_acesso_board(self.user, board)
