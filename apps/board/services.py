# apps/board/services.py

"""
Serviços de boards, listas e tarefas - autoridade de posições no servidor

Movimentos são serializados por lista: a transação trava as linhas das
listas envolvidas (select_for_update, em ordem de id) antes de ler os
vizinhos e gravar a nova posição. Duas movimentações concorrentes na
mesma lista nunca calculam posições colidentes. A ordem das listas de
um board é serializada travando a linha do board.
"""

import logging
import re
from typing import List, Optional, Tuple

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.db import transaction
from django.db.models import Q
from django.utils import timezone
from django.utils.dateparse import parse_date

from apps.core.models import Board, Lista, Tarefa, Usuario
from apps.core.permissions import FluxoPermissions
from apps.core.utils import serializar_board, serializar_lista, serializar_tarefa

from .sync.conf import SyncConfig
from .sync.errors import ExhaustedPrecision
from .sync.positions import PositionAllocator

logger = logging.getLogger(__name__)

# Quantas vezes mover_tarefa refaz a trava se a tarefa trocar de lista antes do lock
TENTATIVAS_DE_TRAVA = 3

_COR = re.compile(r'^#[0-9A-Fa-f]{6}$')


class ServicoErro(Exception):
    """Erro de regra de negócio, convertido em resposta JSON pelas views"""

    status = 400
    code = 'ERROR'

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class DadosInvalidos(ServicoErro):
    status = 400
    code = 'VALIDATION_ERROR'


class AcessoNegado(ServicoErro):
    status = 403
    code = 'FORBIDDEN'


class RecursoNaoEncontrado(ServicoErro):
    status = 404
    code = 'NOT_FOUND'


class ConflitoMovimento(ServicoErro):
    status = 409
    code = 'STALE_PARENT'


class ConflitoMembro(ServicoErro):
    status = 409
    code = 'CONFLICT'


class LimiteWipAtingido(ServicoErro):
    status = 422
    code = 'WIP_LIMIT'


class _TravaDesatualizada(Exception):
    """A tarefa mudou de lista entre a leitura e o lock"""

    def __init__(self, lista_id):
        super().__init__(lista_id)
        self.lista_id = lista_id


def _allocator() -> PositionAllocator:
    return PositionAllocator.from_config(SyncConfig.from_settings())


def renumerar_lista(lista, allocator: Optional[PositionAllocator] = None) -> List[Tarefa]:
    """Reatribui posições canônicas às tarefas da lista, mantendo a ordem"""
    allocator = allocator or _allocator()
    tarefas = list(lista.tarefas.order_by('posicao', 'id'))
    mapa = allocator.renumber(tarefas)

    for tarefa in tarefas:
        tarefa.posicao = mapa[tarefa.id]
    Tarefa.objects.bulk_update(tarefas, ['posicao'])

    logger.info(f"🔢 Lista {lista.id} renumerada ({len(tarefas)} tarefas)")
    return tarefas


def notificar_board(board_id, tipo: str, mensagem: dict) -> None:
    """Envia evento ao grupo WebSocket do board"""
    channel_layer = get_channel_layer()
    if channel_layer is None:
        return

    mensagem = {**mensagem, 'timestamp': timezone.now().isoformat()}
    async_to_sync(channel_layer.group_send)(
        f'board_{board_id}',
        {'type': tipo, 'message': mensagem}
    )


class ServicoBase:
    """
    Acesso comum aos serviços: usuário, alocador e verificação de acesso
    """

    def __init__(self, usuario, allocator: Optional[PositionAllocator] = None):
        self.usuario = usuario
        self.allocator = allocator or _allocator()

    def obter_board(self, board_id) -> Board:
        try:
            board = Board.objects.get(id=board_id, ativo=True)
        except (Board.DoesNotExist, ValueError):
            raise RecursoNaoEncontrado('Board não encontrado')

        self._verificar_acesso(board)
        return board

    def listar_listas(self, board_id) -> List[Lista]:
        board = self.obter_board(board_id)
        return list(board.listas.order_by('posicao', 'id'))

    def _verificar_acesso(self, board) -> None:
        if not board.ativo:
            raise RecursoNaoEncontrado('Board não encontrado')
        if not FluxoPermissions.tem_acesso_board(self.usuario, board):
            raise AcessoNegado('Você não tem acesso a este board')

    def _obter_lista(self, lista_id) -> Lista:
        try:
            lista = Lista.objects.select_related('board').get(id=lista_id)
        except (Lista.DoesNotExist, ValueError):
            raise RecursoNaoEncontrado('Lista não encontrada')

        self._verificar_acesso(lista.board)
        return lista

    def _travar_listas(self, ids) -> List[Lista]:
        """Trava as listas em ordem de id para evitar deadlock entre movimentos cruzados"""
        listas = list(Lista.objects.select_for_update().filter(id__in=ids).order_by('id'))
        if len(listas) != len(set(ids)):
            raise RecursoNaoEncontrado('Lista não encontrada')
        for lista in listas:
            self._verificar_acesso(lista.board)
        return listas

    def _travar_board(self, board_id) -> Board:
        """Serializa mudanças na ordem das listas do board"""
        try:
            board = Board.objects.select_for_update().get(pk=board_id)
        except (Board.DoesNotExist, ValueError):
            raise RecursoNaoEncontrado('Board não encontrado')
        self._verificar_acesso(board)
        return board


class BoardService(ServicoBase):
    """
    Boards e colaboradores

    Editar exige dono, gerente colaborador ou admin; excluir e gerenciar
    colaboradores exige dono ou admin.
    """

    def listar_boards(self) -> List[Board]:
        return list(self.usuario.get_boards_acessiveis().order_by('titulo', 'id'))

    def criar_board(self, titulo: str, descricao: str = '') -> Board:
        titulo = (titulo or '').strip()
        if not titulo:
            raise DadosInvalidos('Título é obrigatório')

        # O signal de post_save cria as listas padrão
        board = Board.objects.create(titulo=titulo, descricao=descricao or '', dono=self.usuario)
        logger.info(f"✨ Board {board.id} criado por {self.usuario.username}")
        return board

    def atualizar_board(self, board_id, dados: dict) -> Board:
        board = self.obter_board(board_id)
        if not FluxoPermissions.pode_editar_board(self.usuario, board):
            raise AcessoNegado('Sem permissão para editar este board')

        if 'title' in dados:
            titulo = (dados['title'] or '').strip()
            if not titulo:
                raise DadosInvalidos('Título é obrigatório')
            board.titulo = titulo
        if 'description' in dados:
            board.descricao = dados['description'] or ''

        board.save()
        notificar_board(board.id, 'board_updated', serializar_board(board))
        return board

    def excluir_board(self, board_id) -> None:
        """Exclusão lógica: o board some das consultas, os dados ficam"""
        board = self.obter_board(board_id)
        if not FluxoPermissions.pode_administrar_board(self.usuario, board):
            raise AcessoNegado('Apenas o dono pode excluir o board')

        board.ativo = False
        board.save(update_fields=['ativo'])

        logger.info(f"🗑️ Board {board.id} desativado por {self.usuario.username}")
        notificar_board(board.id, 'board_deleted', {'id': board.id})

    def adicionar_membro(self, board_id, identificador: str) -> Usuario:
        """Compartilha o board com um usuário (username ou e-mail)"""
        board = self.obter_board(board_id)
        if not FluxoPermissions.pode_administrar_board(self.usuario, board):
            raise AcessoNegado('Apenas o dono pode compartilhar o board')

        identificador = (identificador or '').strip()
        if not identificador:
            raise DadosInvalidos('Informe o usuário ou e-mail do colaborador')

        usuario = Usuario.objects.filter(
            Q(username=identificador) | Q(email__iexact=identificador),
            is_active=True
        ).first()
        if usuario is None:
            raise RecursoNaoEncontrado('Usuário não encontrado')

        if usuario.id == board.dono_id or board.membros.filter(id=usuario.id).exists():
            raise ConflitoMembro('Usuário já colabora neste board')

        board.membros.add(usuario)
        logger.info(f"👥 {usuario.username} adicionado ao board {board.id}")
        notificar_board(board.id, 'board_updated', serializar_board(board))
        return usuario

    def remover_membro(self, board_id, usuario_id) -> None:
        board = self.obter_board(board_id)
        if not FluxoPermissions.pode_administrar_board(self.usuario, board):
            raise AcessoNegado('Apenas o dono pode remover colaboradores')

        if str(usuario_id) == str(board.dono_id):
            raise ConflitoMembro('Não é possível remover o dono do board')
        if not board.membros.filter(id=usuario_id).exists():
            raise RecursoNaoEncontrado('Colaborador não encontrado')

        board.membros.remove(usuario_id)
        logger.info(f"👋 Usuário {usuario_id} removido do board {board.id}")
        notificar_board(board.id, 'board_updated', serializar_board(board))


class ListaService(ServicoBase):
    """
    Listas (colunas) de um board

    A ordem das listas usa o mesmo PositionAllocator das tarefas.
    """

    def criar_lista(self, board_id, titulo: str, posicao: Optional[float] = None,
                    limite_wip=0, cor: Optional[str] = None) -> Lista:
        titulo = (titulo or '').strip()
        if not titulo:
            raise DadosInvalidos('Título é obrigatório')
        limite_wip = self._ler_limite_wip(limite_wip)

        with transaction.atomic():
            board = self._travar_board(board_id)
            posicao = self._posicao_para_criacao(board, posicao)
            campos = {'cor': self._ler_cor(cor)} if cor else {}
            lista = Lista.objects.create(
                titulo=titulo,
                board=board,
                posicao=posicao,
                limite_wip=limite_wip,
                **campos
            )

        logger.info(f"✨ Lista {lista.id} criada no board {board.id} em {posicao}")
        notificar_board(board.id, 'list_created', serializar_lista(lista))
        return lista

    def atualizar_lista(self, lista_id, dados: dict) -> Lista:
        """Título, limite WIP e cor; a ordem muda só via mover_lista"""
        lista = self._obter_lista(lista_id)

        if 'title' in dados:
            titulo = (dados['title'] or '').strip()
            if not titulo:
                raise DadosInvalidos('Título é obrigatório')
            lista.titulo = titulo
        if 'wip_limit' in dados:
            lista.limite_wip = self._ler_limite_wip(dados['wip_limit'])
        if 'color' in dados:
            lista.cor = self._ler_cor(dados['color'])

        lista.save()
        notificar_board(lista.board_id, 'list_updated', serializar_lista(lista))
        return lista

    def mover_lista(self, lista_id, indice: int) -> Tuple[Lista, bool]:
        """
        Leva a lista ao índice dado entre as listas do board

        Retorna (lista, renumeradas), como mover_tarefa.
        """
        if isinstance(indice, bool) or not isinstance(indice, int) or indice < 0:
            raise DadosInvalidos('target_index deve ser um inteiro não negativo')

        atual = self._obter_lista(lista_id)
        renumeradas = False

        with transaction.atomic():
            board = self._travar_board(atual.board_id)
            lista = Lista.objects.get(pk=lista_id)
            irmas = list(board.listas.exclude(pk=lista.pk).order_by('posicao', 'id'))
            indice = min(indice, len(irmas))

            try:
                posicao = self._posicao_entre(irmas, indice)
            except ExhaustedPrecision:
                mapa = self.allocator.renumber(irmas)
                for irma in irmas:
                    irma.posicao = mapa[irma.id]
                Lista.objects.bulk_update(irmas, ['posicao'])
                renumeradas = True
                posicao = self._posicao_entre(irmas, indice)

            lista.posicao = posicao
            lista.save(update_fields=['posicao'])

        logger.info(f"↔️ Lista {lista.id} movida para o índice {indice} do board {board.id}")
        notificar_board(board.id, 'list_moved', serializar_lista(lista, renumbered=renumeradas))
        return lista, renumeradas

    def excluir_lista(self, lista_id) -> None:
        """Remove a lista e todas as suas tarefas"""
        lista = self._obter_lista(lista_id)
        if not FluxoPermissions.pode_editar_board(self.usuario, lista.board):
            raise AcessoNegado('Sem permissão para excluir listas deste board')

        dados = {'id': lista.id, 'board_id': lista.board_id}
        total = lista.tarefas.count()
        lista.delete()

        logger.info(f"🗑️ Lista {dados['id']} excluída com {total} tarefas")
        notificar_board(dados['board_id'], 'list_deleted', dados)

    # === Auxiliares ===

    def _posicao_entre(self, irmas: List[Lista], indice: int) -> float:
        anterior = irmas[indice - 1].posicao if indice > 0 else None
        proxima = irmas[indice].posicao if indice < len(irmas) else None
        return self.allocator.allocate(anterior, proxima)

    def _posicao_para_criacao(self, board, posicao: Optional[float]) -> float:
        if posicao is not None:
            try:
                posicao = float(posicao)
            except (TypeError, ValueError):
                raise DadosInvalidos('position deve ser numérica')
            if not board.listas.filter(posicao=posicao).exists():
                return posicao

        ultima = board.listas.order_by('-posicao').values_list('posicao', flat=True).first()
        return self.allocator.allocate(ultima, None)

    @staticmethod
    def _ler_limite_wip(valor) -> int:
        if valor is None:
            return 0
        if isinstance(valor, bool) or not isinstance(valor, int) or valor < 0:
            raise DadosInvalidos('wip_limit deve ser um inteiro não negativo')
        return valor

    @staticmethod
    def _ler_cor(valor) -> str:
        if not isinstance(valor, str) or not _COR.match(valor):
            raise DadosInvalidos('color deve estar no formato #RRGGBB')
        return valor


class TarefaService(ServicoBase):
    """
    Operações de tarefas em nome de um usuário

    Cada método verifica acesso ao board antes de ler ou escrever.
    """

    # === Leitura ===

    def listar_tarefas(self, lista_id) -> List[Tarefa]:
        lista = self._obter_lista(lista_id)
        return list(lista.tarefas.order_by('posicao', 'id'))

    def obter_tarefa(self, tarefa_id) -> Tarefa:
        try:
            tarefa = Tarefa.objects.select_related('lista__board').get(id=tarefa_id)
        except Tarefa.DoesNotExist:
            raise RecursoNaoEncontrado('Tarefa não encontrada')

        self._verificar_acesso(tarefa.lista.board)
        return tarefa

    # === Escrita ===

    def criar_tarefa(self, lista_id, titulo: str, posicao: Optional[float] = None,
                     descricao: str = '', prazo=None) -> Tarefa:
        titulo = (titulo or '').strip()
        if not titulo:
            raise DadosInvalidos('Título é obrigatório')

        with transaction.atomic():
            lista = self._travar_listas([lista_id])[0]
            if not lista.pode_adicionar_tarefa():
                raise LimiteWipAtingido(f'Lista {lista.titulo} atingiu limite WIP ({lista.limite_wip})')

            posicao = self._posicao_para_criacao(lista, posicao)
            tarefa = Tarefa.objects.create(
                titulo=titulo,
                descricao=descricao or '',
                lista=lista,
                posicao=posicao,
                prazo=self._ler_prazo(prazo),
                criado_por=self.usuario,
            )

        logger.info(f"✨ Tarefa {tarefa.id} criada na lista {lista.id} em {posicao}")
        notificar_board(lista.board_id, 'task_created', serializar_tarefa(tarefa))
        return tarefa

    def atualizar_tarefa(self, tarefa_id, dados: dict) -> Tarefa:
        """Atualiza campos descritivos; posição e lista mudam só via mover_tarefa"""
        tarefa = self.obter_tarefa(tarefa_id)

        if 'title' in dados:
            titulo = (dados['title'] or '').strip()
            if not titulo:
                raise DadosInvalidos('Título é obrigatório')
            tarefa.titulo = titulo
        if 'description' in dados:
            tarefa.descricao = dados['description'] or ''
        if 'due_date' in dados:
            tarefa.prazo = self._ler_prazo(dados['due_date'])

        tarefa.save()
        notificar_board(tarefa.lista.board_id, 'task_updated', serializar_tarefa(tarefa))
        return tarefa

    def excluir_tarefa(self, tarefa_id) -> None:
        tarefa = self.obter_tarefa(tarefa_id)
        if not FluxoPermissions.pode_excluir_tarefa(self.usuario, tarefa):
            raise AcessoNegado('Sem permissão para excluir esta tarefa')

        board_id = tarefa.lista.board_id
        dados = {'id': tarefa.id, 'list_id': tarefa.lista_id}
        tarefa.delete()

        logger.info(f"🗑️ Tarefa {dados['id']} excluída")
        notificar_board(board_id, 'task_deleted', dados)

    def mover_tarefa(self, tarefa_id, lista_destino_id, indice: int,
                     lista_origem_id=None, intencao: Optional[str] = None) -> Tuple[Tarefa, bool]:
        """
        Move a tarefa para o índice da lista de destino

        O índice é contado sem a própria tarefa. Retorna (tarefa, renumerada);
        renumerada indica que as irmãs no destino ganharam novas posições.

        Levanta ConflitoMovimento se lista_origem_id não for mais a lista
        da tarefa (outra pessoa a moveu antes).
        """
        if isinstance(indice, bool) or not isinstance(indice, int) or indice < 0:
            raise DadosInvalidos('target_index deve ser um inteiro não negativo')

        atual = self.obter_tarefa(tarefa_id)
        destino = self._obter_lista(lista_destino_id)
        if destino.board_id != atual.lista.board_id:
            raise DadosInvalidos('Lista de destino pertence a outro board')

        # Todas as travas de uma transação são pedidas de uma vez, em ordem de id.
        # Se a tarefa trocou de lista antes do lock, a transação é desfeita
        # (soltando as travas) e refeita com o novo conjunto.
        lista_atual_id = atual.lista_id
        for tentativa in range(1, TENTATIVAS_DE_TRAVA + 1):
            try:
                tarefa, lista_anterior_id, renumerada, reenvio = self._mover_sob_trava(
                    tarefa_id, lista_atual_id, destino, indice, lista_origem_id, intencao
                )
                break
            except _TravaDesatualizada as exc:
                logger.debug(f"🔒 Tarefa {tarefa_id} foi para a lista {exc.lista_id} antes do lock "
                             f"(tentativa {tentativa})")
                lista_atual_id = exc.lista_id
        else:
            tarefa = Tarefa.objects.get(pk=tarefa_id)
            raise ConflitoMovimento(
                'A tarefa está sendo movida por outra pessoa',
                details={'task': serializar_tarefa(tarefa)}
            )

        if reenvio:
            return tarefa, False

        logger.info(
            f"📦 Tarefa {tarefa.id} movida da lista {lista_anterior_id} para {destino.id} em {tarefa.posicao}"
            f"{' (lista renumerada)' if renumerada else ''}"
        )
        notificar_board(destino.board_id, 'task_moved', {
            **serializar_tarefa(tarefa),
            'previous_list_id': lista_anterior_id,
            'renumbered': renumerada,
            'usuario': self.usuario.get_full_name() or self.usuario.username,
        })
        return tarefa, renumerada

    # === Auxiliares ===

    def _mover_sob_trava(self, tarefa_id, lista_atual_id, destino: Lista, indice: int,
                         lista_origem_id, intencao: Optional[str]):
        """Uma tentativa de movimento; retorna (tarefa, lista_anterior_id, renumerada, reenvio)"""
        renumerada = False
        with transaction.atomic():
            travadas = {lista_atual_id, destino.id}
            self._travar_listas(travadas)
            tarefa = Tarefa.objects.select_for_update().get(pk=tarefa_id)
            if tarefa.lista_id not in travadas:
                raise _TravaDesatualizada(tarefa.lista_id)

            if intencao and tarefa.ultima_intencao == intencao:
                logger.debug(f"🔁 Movimento {intencao} da tarefa {tarefa_id} já aplicado")
                return tarefa, tarefa.lista_id, False, True

            if lista_origem_id is not None and str(tarefa.lista_id) != str(lista_origem_id):
                raise ConflitoMovimento(
                    'A tarefa foi movida para outra lista',
                    details={'task': serializar_tarefa(tarefa)}
                )

            if destino.id != tarefa.lista_id and not destino.pode_adicionar_tarefa():
                raise LimiteWipAtingido(f'Lista {destino.titulo} atingiu limite WIP ({destino.limite_wip})')

            irmas = list(destino.tarefas.exclude(pk=tarefa.pk).order_by('posicao', 'id'))
            indice = min(indice, len(irmas))

            try:
                posicao = self._posicao_entre(irmas, indice)
            except ExhaustedPrecision:
                mapa = self.allocator.renumber(irmas)
                for irma in irmas:
                    irma.posicao = mapa[irma.id]
                Tarefa.objects.bulk_update(irmas, ['posicao'])
                renumerada = True
                posicao = self._posicao_entre(irmas, indice)

            lista_anterior_id = tarefa.lista_id
            tarefa.lista = destino
            tarefa.posicao = posicao
            tarefa.ultima_intencao = intencao or ''
            tarefa.save()

        return tarefa, lista_anterior_id, renumerada, False

    def _posicao_entre(self, irmas: List[Tarefa], indice: int) -> float:
        anterior = irmas[indice - 1].posicao if indice > 0 else None
        proxima = irmas[indice].posicao if indice < len(irmas) else None
        return self.allocator.allocate(anterior, proxima)

    def _posicao_para_criacao(self, lista, posicao: Optional[float]) -> float:
        """
        Usa a posição sugerida pelo cliente se estiver livre;
        senão a tarefa vai para o fim da lista
        """
        if posicao is not None:
            try:
                posicao = float(posicao)
            except (TypeError, ValueError):
                raise DadosInvalidos('position deve ser numérica')
            if not lista.tarefas.filter(posicao=posicao).exists():
                return posicao

        ultima = lista.tarefas.order_by('-posicao').values_list('posicao', flat=True).first()
        return self.allocator.allocate(ultima, None)

    @staticmethod
    def _ler_prazo(valor):
        if not valor:
            return None
        prazo = parse_date(str(valor)) if isinstance(valor, str) else valor
        if prazo is None:
            raise DadosInvalidos('due_date deve estar no formato AAAA-MM-DD')
        return prazo
