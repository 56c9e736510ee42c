# apps/core/permissions.py

from functools import wraps

from .utils import resposta_erro


class FluxoPermissions:
    """
    Sistema de permissões do Fluxo Board
    Baseado nos tipos de usuário: admin, gerente, funcionário
    """

    @staticmethod
    def is_admin(user):
        """Verifica se é administrador"""
        return user.is_authenticated and user.tipo == 'admin'

    @staticmethod
    def tem_acesso_board(user, board):
        """Dono, colaboradores e admins acessam o board"""
        if not user.is_authenticated:
            return False

        if FluxoPermissions.is_admin(user):
            return True

        if board.dono_id == user.id:
            return True

        return board.membros.filter(id=user.id).exists()

    @staticmethod
    def pode_editar_board(user, board):
        """
        Verifica se pode editar o board e excluir listas
        Dono, admin ou gerente colaborador
        """
        if not FluxoPermissions.tem_acesso_board(user, board):
            return False

        if FluxoPermissions.is_admin(user) or board.dono_id == user.id:
            return True

        return user.tipo == 'gerente'

    @staticmethod
    def pode_administrar_board(user, board):
        """Excluir o board e gerenciar colaboradores: só dono ou admin"""
        if not user.is_authenticated:
            return False
        return FluxoPermissions.is_admin(user) or board.dono_id == user.id

    @staticmethod
    def pode_excluir_tarefa(user, tarefa):
        """Funcionário só exclui tarefas que criou"""
        if not FluxoPermissions.tem_acesso_board(user, tarefa.lista.board):
            return False

        if user.tipo in ['admin', 'gerente']:
            return True

        return tarefa.criado_por_id == user.id


# Decoradores para views da API

def api_requer_autenticacao(view_func):
    """
    Decorador para views JSON
    Retorna 401 ao invés de redirecionar para o login
    """

    @wraps(view_func)
    def wrapped_view(request, *args, **kwargs):
        if not request.user.is_authenticated:
            return resposta_erro('Credencial ausente ou inválida', status=401, code='UNAUTHORIZED')
        return view_func(request, *args, **kwargs)

    return wrapped_view
