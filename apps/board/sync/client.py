# apps/board/sync/client.py

"""
Cliente HTTP da API de Tarefas/Listas

Erros de transporte e timeouts viram NetworkFailure; respostas 4xx/5xx
viram ExternalError com o código e os detalhes do envelope de erro.
Respostas 2xx que não são JSON, ou que não descrevem uma tarefa,
viram ExternalError com código INVALID_RESPONSE.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from .api import ServerTask
from .errors import ExternalError, NetworkFailure

logger = logging.getLogger(__name__)

INVALID_RESPONSE = 'INVALID_RESPONSE'


class TaskApiClient:
    """Implementação de TaskApi sobre httpx.AsyncClient"""

    def __init__(self, base_url: str, token: Optional[str] = None, timeout: float = 10.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
            headers={'Content-Type': 'application/json'},
        )
        if token:
            self.set_token(token)

    def set_token(self, token: Optional[str]) -> None:
        if token:
            self._client.headers['Authorization'] = f'Bearer {token}'
        else:
            self._client.headers.pop('Authorization', None)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    # === Autenticação ===

    async def obtain_token(self, username: str, password: str) -> str:
        data = await self._request('POST', '/auth/token/', json={'username': username, 'password': password})
        token = data.get('token') if isinstance(data, dict) else None
        if not isinstance(token, str) or not token:
            raise ExternalError("Resposta de login sem token", 200, INVALID_RESPONSE)
        self.set_token(token)
        return token

    # === Listas ===

    async def list_lists(self, board_id) -> List[Dict[str, Any]]:
        data = await self._request('GET', f'/boards/{board_id}/lists/')
        if not isinstance(data, list) or not all(isinstance(lista, dict) and 'id' in lista for lista in data):
            raise ExternalError("Resposta inválida para as listas do board", 200, INVALID_RESPONSE)
        return data

    async def create_list(self, board_id, title: str, **fields) -> Dict[str, Any]:
        return self._lista(await self._request('POST', f'/boards/{board_id}/lists/',
                                               json={'title': title, **fields}))

    async def update_list(self, list_id, **fields) -> Dict[str, Any]:
        return self._lista(await self._request('PATCH', f'/lists/{list_id}/', json=fields))

    async def move_list(self, list_id, target_index: int) -> Dict[str, Any]:
        return self._lista(await self._request('POST', f'/lists/{list_id}/move/',
                                               json={'target_index': target_index}))

    async def delete_list(self, list_id) -> None:
        await self._request('DELETE', f'/lists/{list_id}/')

    # === Tarefas ===

    async def list_tasks(self, list_id) -> List[ServerTask]:
        data = await self._request('GET', f'/lists/{list_id}/tasks/')
        if not isinstance(data, list):
            raise ExternalError(f"Resposta inválida para as tarefas da lista {list_id}", 200, INVALID_RESPONSE)
        return [self._tarefa(task) for task in data]

    async def get_task(self, task_id) -> ServerTask:
        return self._tarefa(await self._request('GET', f'/tasks/{task_id}/'))

    async def create_task(self, list_id, title: str, position: Optional[float] = None, **fields) -> ServerTask:
        body = {'title': title, **fields}
        if position is not None:
            body['position'] = position
        return self._tarefa(await self._request('POST', f'/lists/{list_id}/tasks/', json=body))

    async def move_task(self, task_id, target_list_id, target_index: int,
                        source_list_id=None, intent_id: Optional[str] = None) -> ServerTask:
        body = {'target_list_id': target_list_id, 'target_index': target_index}
        if source_list_id is not None:
            body['source_list_id'] = source_list_id
        if intent_id:
            body['intent_id'] = intent_id
        return self._tarefa(await self._request('POST', f'/tasks/{task_id}/move/', json=body))

    async def update_task(self, task_id, **fields) -> ServerTask:
        return self._tarefa(await self._request('PATCH', f'/tasks/{task_id}/', json=fields))

    async def delete_task(self, task_id) -> None:
        await self._request('DELETE', f'/tasks/{task_id}/')

    # === Transporte ===

    async def _request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None):
        try:
            response = await self._client.request(method, path, json=json)
        except httpx.TimeoutException as exc:
            raise NetworkFailure(f"Timeout em {method} {path}") from exc
        except httpx.TransportError as exc:
            raise NetworkFailure(f"Erro de rede em {method} {path}: {exc}") from exc

        if response.is_error:
            raise self._erro_da_resposta(response)

        if response.status_code == 204 or not response.content:
            return None

        try:
            body = response.json()
        except ValueError as exc:
            logger.warning(f"⚠️ {method} {path} respondeu {response.status_code} sem JSON")
            raise ExternalError(f"Resposta não é JSON em {method} {path}",
                                response.status_code, INVALID_RESPONSE) from exc

        if isinstance(body, dict) and body.get('success') and 'data' in body:
            return body['data']
        return body

    @staticmethod
    def _tarefa(data) -> ServerTask:
        try:
            return ServerTask.from_payload(data)
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise ExternalError(f"Resposta não descreve uma tarefa: {data!r}", 200, INVALID_RESPONSE) from exc

    @staticmethod
    def _lista(data) -> Dict[str, Any]:
        if not isinstance(data, dict) or 'id' not in data:
            raise ExternalError(f"Resposta não descreve uma lista: {data!r}", 200, INVALID_RESPONSE)
        return data

    @staticmethod
    def _erro_da_resposta(response: httpx.Response) -> ExternalError:
        message = f'HTTP {response.status_code}: {response.reason_phrase}'
        code = str(response.status_code)
        details = None

        try:
            body = response.json()
        except ValueError:
            body = None

        if isinstance(body, dict):
            error = body.get('error')
            if isinstance(error, dict):
                message = error.get('message', message)
                code = error.get('code', code)
                details = error.get('details')
            elif isinstance(error, str):
                message = error

        logger.debug(f"❌ API respondeu {response.status_code} ({code}): {message}")
        return ExternalError(message, response.status_code, code, details)
