# apps/core/utils.py

import json
from typing import Any, Dict, Optional

from django.core.serializers.json import DjangoJSONEncoder
from django.http import JsonResponse


def resposta_sucesso(data: Any, status: int = 200) -> JsonResponse:
    """Envelope padrão de sucesso: {"success": true, "data": ...}"""
    return JsonResponse({'success': True, 'data': data}, status=status, encoder=DjangoJSONEncoder, safe=False)


def resposta_erro(message: str, status: int = 400, code: str = 'ERROR',
                  details: Optional[Dict] = None) -> JsonResponse:
    """Envelope padrão de erro, lido pelo cliente para montar ExternalError"""
    erro = {'code': code, 'message': message}
    if details:
        erro['details'] = details

    return JsonResponse({'success': False, 'message': message, 'error': erro},
                        status=status, encoder=DjangoJSONEncoder)


def ler_corpo_json(request) -> Dict:
    """
    Lê o corpo JSON da requisição
    Corpo vazio equivale a {}; levanta ValueError se não for um objeto
    """
    if not request.body:
        return {}

    data = json.loads(request.body)
    if not isinstance(data, dict):
        raise ValueError("Corpo da requisição deve ser um objeto JSON")
    return data


def serializar_lista(lista, **extra) -> Dict:
    data = {
        'id': lista.id,
        'board_id': lista.board_id,
        'title': lista.titulo,
        'position': lista.posicao,
        'wip_limit': lista.limite_wip,
        'color': lista.cor,
    }
    data.update(extra)
    return data


def serializar_board(board) -> Dict:
    return {
        'id': board.id,
        'title': board.titulo,
        'description': board.descricao,
        'owner_id': board.dono_id,
        'member_ids': sorted(board.membros.values_list('id', flat=True)),
    }


def serializar_tarefa(tarefa, **extra) -> Dict:
    """
    Formato de fio da tarefa

    list_id e position vão em toda resposta de mutação: são os dados
    autoritativos usados pela reconciliação do cliente.
    """
    data = {
        'id': tarefa.id,
        'list_id': tarefa.lista_id,
        'position': tarefa.posicao,
        'title': tarefa.titulo,
        'description': tarefa.descricao,
        'due_date': tarefa.prazo.isoformat() if tarefa.prazo else None,
        'created_at': tarefa.criado_em.isoformat() if tarefa.criado_em else None,
        'updated_at': tarefa.atualizado_em.isoformat() if tarefa.atualizado_em else None,
    }
    data.update(extra)
    return data
