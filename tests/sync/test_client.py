"""Testes do TaskApiClient sobre httpx.MockTransport."""

import json

import httpx
import pytest

from apps.board.sync.api import ServerTask
from apps.board.sync.client import TaskApiClient
from apps.board.sync.errors import ExternalError, NetworkFailure


def make_client(handler, token='tok'):
    return TaskApiClient('http://fluxo.test/api', token=token, transport=httpx.MockTransport(handler))


def ok(data, status=200):
    return httpx.Response(status, json={'success': True, 'data': data})


class TestRequests:
    """Formato das requisições."""

    @pytest.mark.asyncio
    async def test_move_task_body_and_auth(self):
        seen = {}

        def handler(request):
            seen['method'] = request.method
            seen['path'] = request.url.path
            seen['auth'] = request.headers.get('Authorization')
            seen['body'] = json.loads(request.content)
            return ok({'id': 7, 'list_id': 2, 'position': 1.5, 'title': 'T', 'renumbered': True})

        async with make_client(handler) as client:
            task = await client.move_task(7, 2, 1, source_list_id=1, intent_id='abc')

        assert seen == {
            'method': 'POST',
            'path': '/api/tasks/7/move/',
            'auth': 'Bearer tok',
            'body': {'target_list_id': 2, 'target_index': 1, 'source_list_id': 1, 'intent_id': 'abc'},
        }
        assert task == ServerTask(7, 2, 1.5, {'title': 'T'}, renumbered=True)

    @pytest.mark.asyncio
    async def test_move_task_without_optional_fields(self):
        bodies = []

        def handler(request):
            bodies.append(json.loads(request.content))
            return ok({'id': 7, 'list_id': 2, 'position': 1.0})

        async with make_client(handler) as client:
            await client.move_task(7, 2, 0)

        assert bodies == [{'target_list_id': 2, 'target_index': 0}]

    @pytest.mark.asyncio
    async def test_list_tasks(self):
        def handler(request):
            assert request.url.path == '/api/lists/3/tasks/'
            return ok([
                {'id': 1, 'list_id': 3, 'position': 1.0, 'title': 'a'},
                {'id': 2, 'list_id': 3, 'position': 2.0, 'title': 'b'},
            ])

        async with make_client(handler) as client:
            tasks = await client.list_tasks(3)

        assert [t.id for t in tasks] == [1, 2]
        assert tasks[1].payload == {'title': 'b'}

    @pytest.mark.asyncio
    async def test_create_task_sends_position(self):
        bodies = []

        def handler(request):
            bodies.append(json.loads(request.content))
            return ok({'id': 9, 'list_id': 3, 'position': 4.0, 'title': 'Nova'}, status=201)

        async with make_client(handler) as client:
            task = await client.create_task(3, 'Nova', position=4.0, description='d')

        assert bodies == [{'title': 'Nova', 'description': 'd', 'position': 4.0}]
        assert task.position == 4.0

    @pytest.mark.asyncio
    async def test_update_and_delete(self):
        methods = []

        def handler(request):
            methods.append(request.method)
            if request.method == 'DELETE':
                return ok({'id': 9, 'deleted': True})
            return ok({'id': 9, 'list_id': 3, 'position': 4.0, 'title': 'Editada'})

        async with make_client(handler) as client:
            updated = await client.update_task(9, title='Editada')
            assert await client.delete_task(9) is None

        assert methods == ['PATCH', 'DELETE']
        assert updated.payload['title'] == 'Editada'

    @pytest.mark.asyncio
    async def test_obtain_token_sets_header(self):
        auth_headers = []

        def handler(request):
            auth_headers.append(request.headers.get('Authorization'))
            if request.url.path == '/api/auth/token/':
                return ok({'token': 'novo', 'message': 'Bem-vindo'})
            return ok([])

        async with make_client(handler, token=None) as client:
            assert await client.obtain_token('ana', 'segredo') == 'novo'
            await client.list_lists(1)

        assert auth_headers == [None, 'Bearer novo']


class TestErrors:
    """Mapeamento de falhas."""

    @pytest.mark.asyncio
    async def test_error_envelope_becomes_external_error(self):
        def handler(request):
            return httpx.Response(409, json={
                'success': False,
                'message': 'A tarefa foi movida para outra lista',
                'error': {
                    'code': 'STALE_PARENT',
                    'message': 'A tarefa foi movida para outra lista',
                    'details': {'task': {'id': 7, 'list_id': 5, 'position': 3.0}},
                },
            })

        async with make_client(handler) as client:
            with pytest.raises(ExternalError) as exc_info:
                await client.move_task(7, 2, 0, source_list_id=1)

        error = exc_info.value
        assert error.status == 409
        assert error.is_conflict
        assert error.code == 'STALE_PARENT'
        assert error.details['task']['list_id'] == 5

    @pytest.mark.asyncio
    async def test_non_json_error(self):
        def handler(request):
            return httpx.Response(502, text='Bad Gateway')

        async with make_client(handler) as client:
            with pytest.raises(ExternalError) as exc_info:
                await client.get_task(1)

        assert exc_info.value.status == 502
        assert exc_info.value.code == '502'

    @pytest.mark.asyncio
    async def test_unauthorized(self):
        def handler(request):
            return httpx.Response(401, json={'success': False, 'error': {'code': 'UNAUTHORIZED',
                                                                          'message': 'Credencial'}})

        async with make_client(handler) as client:
            with pytest.raises(ExternalError) as exc_info:
                await client.list_tasks(1)

        assert exc_info.value.is_auth

    @pytest.mark.asyncio
    async def test_transport_error_becomes_network_failure(self):
        def handler(request):
            raise httpx.ConnectError('connection refused', request=request)

        async with make_client(handler) as client:
            with pytest.raises(NetworkFailure):
                await client.list_tasks(1)

    @pytest.mark.asyncio
    async def test_timeout_becomes_network_failure(self):
        def handler(request):
            raise httpx.ReadTimeout('timed out', request=request)

        async with make_client(handler) as client:
            with pytest.raises(NetworkFailure):
                await client.move_task(1, 2, 0)

    @pytest.mark.asyncio
    async def test_html_with_status_200_becomes_invalid_response(self):
        def handler(request):
            return httpx.Response(200, text='<html>proxy</html>')

        async with make_client(handler) as client:
            with pytest.raises(ExternalError) as exc_info:
                await client.move_task(7, 2, 0)

        assert exc_info.value.status == 200
        assert exc_info.value.code == 'INVALID_RESPONSE'

    @pytest.mark.parametrize('data', [
        {'id': 7, 'list_id': 2},
        {'id': 7, 'list_id': 2, 'position': 'meio'},
        ['nao', 'e', 'tarefa'],
        'ok',
    ])
    @pytest.mark.asyncio
    async def test_body_without_task_becomes_invalid_response(self, data):
        def handler(request):
            return ok(data)

        async with make_client(handler) as client:
            with pytest.raises(ExternalError) as exc_info:
                await client.move_task(7, 2, 0)

        assert exc_info.value.code == 'INVALID_RESPONSE'

    @pytest.mark.asyncio
    async def test_task_list_that_is_not_a_list(self):
        def handler(request):
            return ok({'id': 1})

        async with make_client(handler) as client:
            with pytest.raises(ExternalError) as exc_info:
                await client.list_tasks(3)

        assert exc_info.value.code == 'INVALID_RESPONSE'

    @pytest.mark.asyncio
    async def test_login_without_token(self):
        def handler(request):
            return ok({'message': 'Bem-vindo'})

        async with make_client(handler, token=None) as client:
            with pytest.raises(ExternalError) as exc_info:
                await client.obtain_token('ana', 'segredo')

        assert exc_info.value.code == 'INVALID_RESPONSE'


class TestLists:
    """Endpoints de listas."""

    @pytest.mark.asyncio
    async def test_create_update_move_and_delete(self):
        seen = []

        def handler(request):
            body = json.loads(request.content) if request.content else None
            seen.append((request.method, request.url.path, body))
            if request.method == 'DELETE':
                return ok({'id': 4, 'deleted': True})
            return ok({'id': 4, 'board_id': 1, 'title': 'Bloqueado', 'position': 2.5})

        async with make_client(handler) as client:
            created = await client.create_list(1, 'Bloqueado', wip_limit=2)
            await client.update_list(4, color='#ff0000')
            moved = await client.move_list(4, 1)
            assert await client.delete_list(4) is None

        assert seen == [
            ('POST', '/api/boards/1/lists/', {'title': 'Bloqueado', 'wip_limit': 2}),
            ('PATCH', '/api/lists/4/', {'color': '#ff0000'}),
            ('POST', '/api/lists/4/move/', {'target_index': 1}),
            ('DELETE', '/api/lists/4/', None),
        ]
        assert created['id'] == 4
        assert moved['position'] == 2.5

    @pytest.mark.asyncio
    async def test_list_without_id_becomes_invalid_response(self):
        def handler(request):
            return ok({'title': 'Sem id'})

        async with make_client(handler) as client:
            with pytest.raises(ExternalError) as exc_info:
                await client.create_list(1, 'Sem id')

        assert exc_info.value.code == 'INVALID_RESPONSE'
