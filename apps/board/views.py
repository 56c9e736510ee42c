# apps/board/views.py

import json
import logging
from functools import wraps

from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods, require_POST

from apps.core.auth_service import AuthenticationService
from apps.core.permissions import api_requer_autenticacao
from apps.core.utils import (
    ler_corpo_json,
    resposta_erro,
    resposta_sucesso,
    serializar_board,
    serializar_lista,
    serializar_tarefa,
)

from .services import BoardService, ListaService, ServicoErro, TarefaService

logger = logging.getLogger(__name__)


def api_view(view_func):
    """
    Converte erros de serviço e JSON inválido no envelope de erro
    """

    @wraps(view_func)
    def wrapped_view(request, *args, **kwargs):
        try:
            return view_func(request, *args, **kwargs)
        except ServicoErro as e:
            return resposta_erro(e.message, status=e.status, code=e.code, details=e.details)
        except (json.JSONDecodeError, ValueError) as e:
            return resposta_erro(f'Corpo inválido: {e}', status=400, code='VALIDATION_ERROR')

    return wrapped_view


@csrf_exempt
@require_POST
@api_view
def obter_token(request):
    """
    Troca usuário e senha por um token Bearer
    """
    data = ler_corpo_json(request)
    username = data.get('username', '')
    password = data.get('password', '')

    if not username or not password:
        return resposta_erro('Informe usuário e senha', status=400, code='VALIDATION_ERROR')

    sucesso, mensagem, token = AuthenticationService().obter_token(username, password)
    if not sucesso:
        return resposta_erro(mensagem, status=401, code='UNAUTHORIZED')

    return resposta_sucesso({'token': token, 'message': mensagem})


@csrf_exempt
@require_http_methods(["GET", "POST"])
@api_requer_autenticacao
@api_view
def boards(request):
    """
    GET lista os boards acessíveis ao usuário
    POST cria um board (title obrigatório) com as listas padrão
    """
    service = BoardService(request.user)

    if request.method == 'GET':
        return resposta_sucesso([serializar_board(board) for board in service.listar_boards()])

    data = ler_corpo_json(request)
    board = service.criar_board(data.get('title', ''), data.get('description', ''))
    return resposta_sucesso({
        **serializar_board(board),
        'lists': [serializar_lista(lista) for lista in service.listar_listas(board.id)],
    }, status=201)


@csrf_exempt
@require_http_methods(["GET", "PATCH", "DELETE"])
@api_requer_autenticacao
@api_view
def board_detalhe(request, board_id):
    """Board com suas listas ordenadas"""
    service = BoardService(request.user)

    if request.method == 'PATCH':
        service.atualizar_board(board_id, ler_corpo_json(request))
    elif request.method == 'DELETE':
        service.excluir_board(board_id)
        return resposta_sucesso({'id': board_id, 'deleted': True})

    board = service.obter_board(board_id)
    return resposta_sucesso({
        **serializar_board(board),
        'lists': [serializar_lista(lista) for lista in service.listar_listas(board_id)],
    })


@csrf_exempt
@require_POST
@api_requer_autenticacao
@api_view
def membros_do_board(request, board_id):
    """Compartilha o board: corpo com username ou email do colaborador"""
    data = ler_corpo_json(request)
    service = BoardService(request.user)
    service.adicionar_membro(board_id, data.get('username') or data.get('email') or '')
    return resposta_sucesso(serializar_board(service.obter_board(board_id)), status=201)


@csrf_exempt
@require_http_methods(["DELETE"])
@api_requer_autenticacao
@api_view
def membro_do_board(request, board_id, usuario_id):
    service = BoardService(request.user)
    service.remover_membro(board_id, usuario_id)
    return resposta_sucesso(serializar_board(service.obter_board(board_id)))


@csrf_exempt
@require_http_methods(["GET", "POST"])
@api_requer_autenticacao
@api_view
def listas_do_board(request, board_id):
    """
    GET lista as listas em ordem de posição
    POST cria lista no fim do board (title obrigatório)
    """
    service = ListaService(request.user)

    if request.method == 'GET':
        return resposta_sucesso([serializar_lista(lista) for lista in service.listar_listas(board_id)])

    data = ler_corpo_json(request)
    lista = service.criar_lista(
        board_id,
        data.get('title', ''),
        posicao=data.get('position'),
        limite_wip=data.get('wip_limit', 0),
        cor=data.get('color'),
    )
    return resposta_sucesso(serializar_lista(lista), status=201)


@csrf_exempt
@require_http_methods(["PATCH", "DELETE"])
@api_requer_autenticacao
@api_view
def lista_detalhe(request, lista_id):
    service = ListaService(request.user)

    if request.method == 'PATCH':
        lista = service.atualizar_lista(lista_id, ler_corpo_json(request))
        return resposta_sucesso(serializar_lista(lista))

    service.excluir_lista(lista_id)
    return resposta_sucesso({'id': lista_id, 'deleted': True})


@csrf_exempt
@require_POST
@api_requer_autenticacao
@api_view
def mover_lista(request, lista_id):
    """Reordena a lista no board; corpo: target_index"""
    indice = ler_corpo_json(request).get('target_index')
    if indice is None:
        return resposta_erro('target_index é obrigatório', status=400, code='VALIDATION_ERROR')

    lista, renumeradas = ListaService(request.user).mover_lista(lista_id, indice)
    return resposta_sucesso(serializar_lista(lista, renumbered=renumeradas))


@csrf_exempt
@require_http_methods(["GET", "POST"])
@api_requer_autenticacao
@api_view
def tarefas_da_lista(request, lista_id):
    """
    GET lista as tarefas em ordem de posição
    POST cria tarefa (title obrigatório, position opcional)
    """
    service = TarefaService(request.user)

    if request.method == 'GET':
        tarefas = service.listar_tarefas(lista_id)
        return resposta_sucesso([serializar_tarefa(t) for t in tarefas])

    data = ler_corpo_json(request)
    tarefa = service.criar_tarefa(
        lista_id,
        data.get('title', ''),
        posicao=data.get('position'),
        descricao=data.get('description', ''),
        prazo=data.get('due_date'),
    )
    return resposta_sucesso(serializar_tarefa(tarefa), status=201)


@csrf_exempt
@require_http_methods(["GET", "PATCH", "DELETE"])
@api_requer_autenticacao
@api_view
def tarefa_detalhe(request, tarefa_id):
    service = TarefaService(request.user)

    if request.method == 'GET':
        return resposta_sucesso(serializar_tarefa(service.obter_tarefa(tarefa_id)))

    if request.method == 'PATCH':
        tarefa = service.atualizar_tarefa(tarefa_id, ler_corpo_json(request))
        return resposta_sucesso(serializar_tarefa(tarefa))

    service.excluir_tarefa(tarefa_id)
    return resposta_sucesso({'id': tarefa_id, 'deleted': True})


@csrf_exempt
@require_POST
@api_requer_autenticacao
@api_view
def mover_tarefa(request, tarefa_id):
    """
    Move tarefa entre listas (drag-and-drop)

    Corpo: target_list_id, target_index, e opcionalmente source_list_id
    e intent_id. A posição é sempre calculada aqui.
    """
    data = ler_corpo_json(request)
    lista_destino_id = data.get('target_list_id')
    indice = data.get('target_index')

    if lista_destino_id is None or indice is None:
        return resposta_erro('target_list_id e target_index são obrigatórios',
                             status=400, code='VALIDATION_ERROR')

    tarefa, renumerada = TarefaService(request.user).mover_tarefa(
        tarefa_id,
        lista_destino_id,
        indice,
        lista_origem_id=data.get('source_list_id'),
        intencao=data.get('intent_id'),
    )
    return resposta_sucesso(serializar_tarefa(tarefa, renumbered=renumerada))
