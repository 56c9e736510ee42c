# apps/core/middleware.py

from urllib.parse import parse_qs

from channels.db import database_sync_to_async
from channels.middleware import BaseMiddleware
from django.utils.functional import SimpleLazyObject


class BearerTokenMiddleware:
    """
    Autentica requisições da API pelo cabeçalho Authorization: Bearer <token>

    Roda depois do AuthenticationMiddleware: quando há token válido ele
    substitui o usuário da sessão; token inválido resulta em anônimo.
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        token = self._extrair_token(request)
        if token is not None:
            request.user = SimpleLazyObject(lambda: self._usuario_do_token(token))

        response = self.get_response(request)

        # Adicionar headers de identificação
        if token is not None and request.user.is_authenticated:
            response['X-User-Type'] = request.user.tipo

        return response

    @staticmethod
    def _extrair_token(request):
        header = request.META.get('HTTP_AUTHORIZATION', '')
        tipo, _, token = header.partition(' ')
        if tipo.lower() != 'bearer' or not token.strip():
            return None
        return token.strip()

    @staticmethod
    def _usuario_do_token(token):
        from django.contrib.auth.models import AnonymousUser
        from .auth_service import AuthenticationService

        return AuthenticationService().validar_token(token) or AnonymousUser()


class WebSocketTokenMiddleware(BaseMiddleware):
    """
    Autenticação do WebSocket pelo parâmetro ?token= da URL

    Navegadores não enviam Authorization no handshake; sem token válido
    mantém o usuário da sessão definido pelo AuthMiddlewareStack.
    """

    async def __call__(self, scope, receive, send):
        token = parse_qs(scope.get('query_string', b'').decode()).get('token', [None])[0]
        if token:
            usuario = await self._usuario_do_token(token)
            if usuario is not None:
                scope = dict(scope, user=usuario)

        return await super().__call__(scope, receive, send)

    @staticmethod
    @database_sync_to_async
    def _usuario_do_token(token):
        from .auth_service import AuthenticationService

        return AuthenticationService().validar_token(token)
