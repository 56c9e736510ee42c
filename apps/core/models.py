# apps/core/models.py

from django.contrib.auth.models import AbstractUser
from django.db import models
from django.utils import timezone


class Usuario(AbstractUser):
    """
    Modelo de usuário customizado

    O tipo define o que o usuário pode fazer nos boards dos quais
    participa (admin acessa todos).
    """

    TIPO_CHOICES = [
        ('admin', 'Administrador'),
        ('gerente', 'Gerente'),
        ('funcionario', 'Funcionário'),
    ]

    tipo = models.CharField(max_length=20, choices=TIPO_CHOICES, default='funcionario')

    # === METADADOS ===
    criado_em = models.DateTimeField(auto_now_add=True)
    atualizado_em = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'usuario'

    def get_boards_acessiveis(self):
        """
        Retorna boards que o usuário pode acessar

        Admin vê todos os boards ativos; os demais, apenas os boards
        onde são donos ou colaboradores.
        """
        if self.tipo == 'admin':
            return Board.objects.filter(ativo=True)

        return Board.objects.filter(
            models.Q(dono=self) | models.Q(membros=self),
            ativo=True
        ).distinct()

    def __str__(self):
        nome_completo = self.get_full_name()
        if nome_completo:
            return f"{nome_completo} ({self.username})"
        return self.username


class Board(models.Model):
    """Quadro Kanban compartilhado entre colaboradores"""

    titulo = models.CharField(max_length=200)
    descricao = models.TextField(blank=True)
    dono = models.ForeignKey(
        Usuario,
        on_delete=models.PROTECT,
        related_name='boards_criados'
    )
    membros = models.ManyToManyField(
        Usuario,
        related_name='boards_membro',
        blank=True
    )
    ativo = models.BooleanField(default=True)
    criado_em = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'board'
        ordering = ['titulo']

    def __str__(self):
        return self.titulo

    def criar_listas_padrao(self):
        """Cria listas padrão para novo board"""
        listas_padrao = ['A Fazer', 'Em Progresso', 'Em Revisão', 'Concluído']
        for idx, nome in enumerate(listas_padrao, start=1):
            Lista.objects.create(
                titulo=nome,
                board=self,
                posicao=float(idx)
            )


class Lista(models.Model):
    """Lista (coluna) do board Kanban"""

    titulo = models.CharField(max_length=100)
    board = models.ForeignKey(
        Board,
        on_delete=models.CASCADE,
        related_name='listas'
    )
    posicao = models.FloatField(default=0)
    limite_wip = models.IntegerField(
        default=0,
        help_text="Work In Progress - 0 = sem limite"
    )
    cor = models.CharField(max_length=7, default='#6B7280')

    class Meta:
        db_table = 'lista'
        ordering = ['posicao', 'id']

    def __str__(self):
        return f"{self.titulo} - {self.board.titulo}"

    def pode_adicionar_tarefa(self):
        """Verifica se pode receber mais uma tarefa respeitando WIP"""
        if self.limite_wip == 0:
            return True
        return self.tarefas.count() < self.limite_wip


class Tarefa(models.Model):
    """
    Tarefa de uma lista

    posicao define a ordem dentro da lista: menor posição aparece antes.
    Nenhuma outra tarefa da mesma lista compartilha o valor; o serviço
    de movimentação calcula posições sob lock da lista.
    """

    titulo = models.CharField(max_length=200)
    descricao = models.TextField(blank=True)
    lista = models.ForeignKey(
        Lista,
        on_delete=models.CASCADE,
        related_name='tarefas'
    )
    posicao = models.FloatField(default=0)
    prazo = models.DateField(null=True, blank=True)
    criado_por = models.ForeignKey(
        Usuario,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='tarefas_criadas'
    )
    # Última MoveIntent aplicada - torna reenvios idempotentes
    ultima_intencao = models.CharField(max_length=64, blank=True, default='')
    criado_em = models.DateTimeField(auto_now_add=True)
    atualizado_em = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'tarefa'
        ordering = ['posicao', 'id']
        indexes = [
            models.Index(fields=['lista', 'posicao'], name='tarefa_lista_posicao_idx'),
        ]

    def __str__(self):
        return self.titulo

    def esta_atrasada(self):
        """Verifica se a tarefa está atrasada"""
        if self.prazo and self.lista.titulo != 'Concluído':
            return timezone.now().date() > self.prazo
        return False
