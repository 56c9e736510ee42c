"""Fixtures de banco para os testes da API do board."""

import pytest

from apps.core.auth_service import AuthenticationService
from apps.core.models import Board, Tarefa, Usuario


@pytest.fixture
def dono(db):
    return Usuario.objects.create_user('dono', 'dono@fluxo.local', 'senha-forte-1', tipo='gerente')


@pytest.fixture
def membro(db):
    return Usuario.objects.create_user('membro', 'membro@fluxo.local', 'senha-forte-2')


@pytest.fixture
def estranho(db):
    return Usuario.objects.create_user('estranho', 'estranho@fluxo.local', 'senha-forte-3')


@pytest.fixture
def board(dono, membro):
    """Board com as listas padrão criadas pelo signal"""
    board = Board.objects.create(titulo='Sprint', dono=dono)
    board.membros.add(membro)
    return board


@pytest.fixture
def listas(board):
    """Listas do board por título"""
    return {lista.titulo: lista for lista in board.listas.all()}


@pytest.fixture
def a_fazer(listas):
    return listas['A Fazer']


@pytest.fixture
def em_progresso(listas):
    return listas['Em Progresso']


@pytest.fixture
def criar_tarefas(dono):
    """Cria tarefas na lista com posições 1.0, 2.0, ..."""

    def criar(lista, *titulos, inicio=1.0):
        return [
            Tarefa.objects.create(titulo=titulo, lista=lista, posicao=inicio + idx, criado_por=dono)
            for idx, titulo in enumerate(titulos)
        ]

    return criar


@pytest.fixture
def token_de():
    def gerar(usuario):
        return AuthenticationService().gerar_token(usuario)

    return gerar
