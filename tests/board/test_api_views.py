"""Testes da API JSON do board (envelope, autenticação e movimentos)."""

import json

import pytest
from django.core.cache import cache
from django.test import Client
from django.urls import reverse

from apps.core.models import Board, Lista, Tarefa


def ordem(lista):
    return list(lista.tarefas.order_by('posicao', 'id').values_list('titulo', flat=True))


@pytest.fixture(autouse=True)
def limpar_cache():
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def api(client, membro, token_de):
    """Client autenticado como membro do board"""
    client.defaults['HTTP_AUTHORIZATION'] = f'Bearer {token_de(membro)}'
    return client


def post_json(client, url, data):
    return client.post(url, data=json.dumps(data), content_type='application/json')


class TestToken:
    """Emissão de token"""

    def test_credenciais_validas(self, client, membro):
        response = post_json(client, reverse('board:obter_token'),
                             {'username': 'membro', 'password': 'senha-forte-2'})

        body = response.json()
        assert response.status_code == 200
        assert body['success'] is True
        assert body['data']['token']

    def test_login_por_email(self, client, membro):
        response = post_json(client, reverse('board:obter_token'),
                             {'username': 'membro@fluxo.local', 'password': 'senha-forte-2'})

        assert response.status_code == 200

    def test_senha_errada(self, client, membro):
        response = post_json(client, reverse('board:obter_token'),
                             {'username': 'membro', 'password': 'errada'})

        assert response.status_code == 401
        assert response.json()['error']['code'] == 'UNAUTHORIZED'

    def test_campos_obrigatorios(self, client, db):
        response = post_json(client, reverse('board:obter_token'), {'username': 'membro'})

        assert response.status_code == 400
        assert response.json()['error']['code'] == 'VALIDATION_ERROR'

    def test_bloqueio_apos_tentativas(self, client, membro):
        url = reverse('board:obter_token')
        for _ in range(5):
            post_json(client, url, {'username': 'membro', 'password': 'errada'})

        response = post_json(client, url, {'username': 'membro', 'password': 'senha-forte-2'})

        assert response.status_code == 401
        assert 'bloqueada' in response.json()['message']

    def test_token_emitido_autentica(self, client, membro, board):
        token = post_json(client, reverse('board:obter_token'),
                          {'username': 'membro', 'password': 'senha-forte-2'}).json()['data']['token']

        response = client.get(reverse('board:board_detalhe', args=[board.id]),
                              HTTP_AUTHORIZATION=f'Bearer {token}')

        assert response.status_code == 200
        assert response['X-User-Type'] == 'funcionario'


class TestAutenticacao:
    def test_sem_token(self, client, board):
        response = client.get(reverse('board:board_detalhe', args=[board.id]))

        assert response.status_code == 401
        assert response.json() == {
            'success': False,
            'message': 'Credencial ausente ou inválida',
            'error': {'code': 'UNAUTHORIZED', 'message': 'Credencial ausente ou inválida'},
        }

    def test_token_adulterado(self, client, board, membro, token_de):
        response = client.get(reverse('board:board_detalhe', args=[board.id]),
                              HTTP_AUTHORIZATION=f'Bearer {token_de(membro)}x')

        assert response.status_code == 401

    def test_estranho_recebe_403(self, client, board, estranho, token_de):
        response = client.get(reverse('board:board_detalhe', args=[board.id]),
                              HTTP_AUTHORIZATION=f'Bearer {token_de(estranho)}')

        assert response.status_code == 403
        assert response.json()['error']['code'] == 'FORBIDDEN'


class TestLeitura:
    def test_board_com_listas(self, api, board):
        response = api.get(reverse('board:board_detalhe', args=[board.id]))

        data = response.json()['data']
        assert data['title'] == 'Sprint'
        assert [lista['title'] for lista in data['lists']] == ['A Fazer', 'Em Progresso', 'Em Revisão', 'Concluído']

    def test_tarefas_da_lista(self, api, a_fazer, criar_tarefas):
        criar_tarefas(a_fazer, 'T1', 'T2')

        response = api.get(reverse('board:tarefas_da_lista', args=[a_fazer.id]))

        tarefas = response.json()['data']
        assert [(t['title'], t['position'], t['list_id']) for t in tarefas] == [
            ('T1', 1.0, a_fazer.id), ('T2', 2.0, a_fazer.id),
        ]

    def test_board_inexistente(self, api, db):
        response = api.get(reverse('board:board_detalhe', args=[999]))

        assert response.status_code == 404
        assert response.json()['error']['code'] == 'NOT_FOUND'

    def test_metodo_nao_permitido(self, api, board):
        response = api.put(reverse('board:board_detalhe', args=[board.id]))

        assert response.status_code == 405


class TestEscrita:
    def test_cria_tarefa(self, api, a_fazer):
        response = post_json(api, reverse('board:tarefas_da_lista', args=[a_fazer.id]),
                             {'title': 'Nova', 'description': 'detalhes'})

        data = response.json()['data']
        assert response.status_code == 201
        assert data['title'] == 'Nova'
        assert data['position'] == 1.0
        assert data['list_id'] == a_fazer.id

    def test_json_invalido(self, api, a_fazer):
        response = api.post(reverse('board:tarefas_da_lista', args=[a_fazer.id]),
                            data='{nao e json', content_type='application/json')

        assert response.status_code == 400
        assert response.json()['error']['code'] == 'VALIDATION_ERROR'

    def test_corpo_que_nao_e_objeto(self, api, a_fazer):
        response = post_json(api, reverse('board:tarefas_da_lista', args=[a_fazer.id]), ['Nova'])

        assert response.status_code == 400

    def test_edita_tarefa(self, api, a_fazer, criar_tarefas):
        (t1,) = criar_tarefas(a_fazer, 'T1')

        response = api.patch(reverse('board:tarefa_detalhe', args=[t1.id]),
                             data=json.dumps({'title': 'Editada'}), content_type='application/json')

        assert response.status_code == 200
        assert response.json()['data']['title'] == 'Editada'

    def test_exclui_propria_tarefa(self, api, a_fazer):
        criada = post_json(api, reverse('board:tarefas_da_lista', args=[a_fazer.id]), {'title': 'Minha'})
        tarefa_id = criada.json()['data']['id']

        response = api.delete(reverse('board:tarefa_detalhe', args=[tarefa_id]))

        assert response.json()['data'] == {'id': tarefa_id, 'deleted': True}
        assert not Tarefa.objects.filter(pk=tarefa_id).exists()

    def test_exclusao_sem_permissao(self, api, a_fazer, criar_tarefas):
        (t1,) = criar_tarefas(a_fazer, 'T1')

        response = api.delete(reverse('board:tarefa_detalhe', args=[t1.id]))

        assert response.status_code == 403


class TestMover:
    """POST /api/tasks/<id>/move/"""

    def test_move_e_retorna_posicao_autoritativa(self, api, a_fazer, em_progresso, criar_tarefas):
        t1, _ = criar_tarefas(a_fazer, 'T1', 'T2')
        criar_tarefas(em_progresso, 'P1')

        response = post_json(api, reverse('board:mover_tarefa', args=[t1.id]), {
            'target_list_id': em_progresso.id,
            'target_index': 0,
            'source_list_id': a_fazer.id,
            'intent_id': 'abc',
        })

        data = response.json()['data']
        assert response.status_code == 200
        assert (data['id'], data['list_id'], data['position']) == (t1.id, em_progresso.id, 0.0)
        assert data['renumbered'] is False
        assert ordem(em_progresso) == ['T1', 'P1']

    def test_campos_obrigatorios(self, api, a_fazer, criar_tarefas):
        (t1,) = criar_tarefas(a_fazer, 'T1')

        response = post_json(api, reverse('board:mover_tarefa', args=[t1.id]), {'target_list_id': a_fazer.id})

        assert response.status_code == 400

    def test_conflito_traz_tarefa_atual(self, api, a_fazer, em_progresso, criar_tarefas):
        (t1,) = criar_tarefas(a_fazer, 'T1')

        response = post_json(api, reverse('board:mover_tarefa', args=[t1.id]), {
            'target_list_id': a_fazer.id,
            'target_index': 0,
            'source_list_id': em_progresso.id,
        })

        erro = response.json()['error']
        assert response.status_code == 409
        assert erro['code'] == 'STALE_PARENT'
        assert erro['details']['task']['list_id'] == a_fazer.id

    def test_limite_wip(self, api, a_fazer, em_progresso, criar_tarefas):
        em_progresso.limite_wip = 1
        em_progresso.save()
        criar_tarefas(em_progresso, 'P1')
        (t1,) = criar_tarefas(a_fazer, 'T1')

        response = post_json(api, reverse('board:mover_tarefa', args=[t1.id]),
                             {'target_list_id': em_progresso.id, 'target_index': 0})

        assert response.status_code == 422
        assert response.json()['error']['code'] == 'WIP_LIMIT'

    def test_get_nao_permitido(self, api, a_fazer, criar_tarefas):
        (t1,) = criar_tarefas(a_fazer, 'T1')

        assert api.get(reverse('board:mover_tarefa', args=[t1.id])).status_code == 405


@pytest.fixture
def api_dono(dono, token_de):
    """Client autenticado como dono (gerente) do board"""
    return Client(HTTP_AUTHORIZATION=f'Bearer {token_de(dono)}')


def patch_json(client, url, data):
    return client.patch(url, data=json.dumps(data), content_type='application/json')


class TestBoards:
    """/api/boards/ e /api/boards/<id>/"""

    def test_lista_boards(self, api, board):
        response = api.get(reverse('board:boards'))

        assert [b['title'] for b in response.json()['data']] == ['Sprint']

    def test_cria_board(self, api, membro):
        response = post_json(api, reverse('board:boards'), {'title': 'Pessoal'})

        data = response.json()['data']
        assert response.status_code == 201
        assert data['owner_id'] == membro.id
        assert [lista['title'] for lista in data['lists']] == ['A Fazer', 'Em Progresso', 'Em Revisão', 'Concluído']

    def test_dono_edita(self, api_dono, board):
        response = patch_json(api_dono, reverse('board:board_detalhe', args=[board.id]), {'title': 'Sprint 2'})

        assert response.status_code == 200
        assert response.json()['data']['title'] == 'Sprint 2'

    def test_funcionario_nao_exclui(self, api, board):
        response = api.delete(reverse('board:board_detalhe', args=[board.id]))

        assert response.status_code == 403

    def test_dono_exclui(self, api_dono, board):
        response = api_dono.delete(reverse('board:board_detalhe', args=[board.id]))

        assert response.json()['data'] == {'id': board.id, 'deleted': True}
        assert Board.objects.get(pk=board.pk).ativo is False
        assert api_dono.get(reverse('board:board_detalhe', args=[board.id])).status_code == 404


class TestMembros:
    """/api/boards/<id>/members/"""

    def test_compartilha_e_remove(self, api_dono, board, estranho):
        response = post_json(api_dono, reverse('board:membros_do_board', args=[board.id]),
                             {'email': 'estranho@fluxo.local'})

        assert response.status_code == 201
        assert estranho.id in response.json()['data']['member_ids']

        response = api_dono.delete(reverse('board:membro_do_board', args=[board.id, estranho.id]))

        assert estranho.id not in response.json()['data']['member_ids']

    def test_ja_colabora(self, api_dono, board):
        response = post_json(api_dono, reverse('board:membros_do_board', args=[board.id]), {'username': 'membro'})

        assert response.status_code == 409
        assert response.json()['error']['code'] == 'CONFLICT'

    def test_membro_nao_compartilha(self, api, board, estranho):
        response = post_json(api, reverse('board:membros_do_board', args=[board.id]), {'username': 'estranho'})

        assert response.status_code == 403


class TestListas:
    """/api/boards/<id>/lists/ e /api/lists/<id>/"""

    def test_cria_lista(self, api, board):
        response = post_json(api, reverse('board:listas_do_board', args=[board.id]),
                             {'title': 'Bloqueado', 'wip_limit': 2, 'color': '#EF4444'})

        data = response.json()['data']
        assert response.status_code == 201
        assert (data['title'], data['position'], data['wip_limit'], data['color']) == (
            'Bloqueado', 5.0, 2, '#EF4444')

    def test_wip_invalido(self, api, board):
        response = post_json(api, reverse('board:listas_do_board', args=[board.id]),
                             {'title': 'Bloqueado', 'wip_limit': -2})

        assert response.status_code == 400
        assert response.json()['error']['code'] == 'VALIDATION_ERROR'

    def test_edita_lista(self, api, a_fazer):
        response = patch_json(api, reverse('board:lista_detalhe', args=[a_fazer.id]), {'title': 'Backlog'})

        assert response.json()['data']['title'] == 'Backlog'

    def test_move_lista(self, api, board, listas):
        response = post_json(api, reverse('board:mover_lista', args=[listas['Concluído'].id]), {'target_index': 0})

        data = response.json()['data']
        assert (data['position'], data['renumbered']) == (0.0, False)
        assert [l['title'] for l in api.get(reverse('board:listas_do_board', args=[board.id])).json()['data']] == [
            'Concluído', 'A Fazer', 'Em Progresso', 'Em Revisão',
        ]

    def test_move_lista_sem_indice(self, api, a_fazer):
        response = post_json(api, reverse('board:mover_lista', args=[a_fazer.id]), {})

        assert response.status_code == 400

    def test_exclusao_exige_gerente(self, api, api_dono, a_fazer):
        assert api.delete(reverse('board:lista_detalhe', args=[a_fazer.id])).status_code == 403

        response = api_dono.delete(reverse('board:lista_detalhe', args=[a_fazer.id]))

        assert response.json()['data'] == {'id': a_fazer.id, 'deleted': True}
        assert not Lista.objects.filter(pk=a_fazer.pk).exists()
