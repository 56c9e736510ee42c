# apps/core/auth_service.py

"""
Serviço de Autenticação - emite e valida os tokens Bearer da API
Aplica princípios de encapsulamento para manter código organizado e seguro
"""

import logging
from typing import Optional, Tuple

from django.conf import settings
from django.contrib.auth import authenticate
from django.core import signing
from django.core.cache import cache
from django.utils import timezone

from .models import Usuario

logger = logging.getLogger(__name__)


class AuthenticationService:
    """
    Serviço encapsulado para gerenciar autenticação por token

    O token é o id do usuário assinado com TimestampSigner; expira depois
    de FLUXO_TOKEN_MAX_AGE segundos.
    """

    SALT = 'fluxo.api.token'

    def __init__(self):
        # Atributos privados - encapsulados
        self._max_login_attempts = 5
        self._lockout_duration_minutes = 15
        self._token_max_age = getattr(settings, 'FLUXO_TOKEN_MAX_AGE', 86400)
        self._signer = signing.TimestampSigner(salt=self.SALT)

    def obter_token(self, username: str, password: str) -> Tuple[bool, str, Optional[str]]:
        """
        Autentica e emite token

        Returns:
            Tuple[sucesso, mensagem, token]
        """
        if self._conta_esta_bloqueada(username):
            return False, "Conta temporariamente bloqueada por muitas tentativas incorretas", None

        usuario = self._autenticar_usuario(username, password)
        if not usuario:
            self._registrar_tentativa_falha(username)
            return False, "Credenciais inválidas", None

        self._resetar_tentativas_login(username)
        self._atualizar_ultimo_acesso(usuario)
        return True, f"Bem-vindo, {usuario.get_full_name() or usuario.username}!", self.gerar_token(usuario)

    def gerar_token(self, usuario: Usuario) -> str:
        return self._signer.sign(str(usuario.pk))

    def validar_token(self, token: str) -> Optional[Usuario]:
        """Retorna o usuário do token, ou None se inválido/expirado"""
        try:
            user_id = self._signer.unsign(token, max_age=self._token_max_age)
        except signing.SignatureExpired:
            logger.info("🔑 Token expirado")
            return None
        except signing.BadSignature:
            logger.warning("⚠️ Token com assinatura inválida")
            return None

        try:
            return Usuario.objects.get(pk=user_id, is_active=True)
        except (Usuario.DoesNotExist, ValueError):
            return None

    # =================== MÉTODOS PRIVADOS (ENCAPSULADOS) ===================

    def _autenticar_usuario(self, username: str, password: str) -> Optional[Usuario]:
        """Autentica usuário (username ou email)"""
        usuario = authenticate(username=username, password=password)

        if not usuario:
            try:
                user_obj = Usuario.objects.get(email=username, is_active=True)
                usuario = authenticate(username=user_obj.username, password=password)
            except (Usuario.DoesNotExist, Usuario.MultipleObjectsReturned):
                pass

        return usuario

    def _chave_tentativas(self, username: str) -> str:
        return f'fluxo:login:tentativas:{username.lower()}'

    def _conta_esta_bloqueada(self, username: str) -> bool:
        """Verifica se conta está bloqueada por tentativas"""
        return cache.get(self._chave_tentativas(username), 0) >= self._max_login_attempts

    def _registrar_tentativa_falha(self, username: str):
        """Registra tentativa de login falhada"""
        chave = self._chave_tentativas(username)
        tentativas = cache.get(chave, 0) + 1
        cache.set(chave, tentativas, self._lockout_duration_minutes * 60)
        logger.warning(f"⚠️ Tentativa de login falhada para: {username} ({tentativas})")

    def _resetar_tentativas_login(self, username: str):
        """Reseta contador de tentativas"""
        cache.delete(self._chave_tentativas(username))

    def _atualizar_ultimo_acesso(self, usuario: Usuario):
        """Atualiza timestamp do último acesso"""
        usuario.last_login = timezone.now()
        usuario.save(update_fields=['last_login'])
