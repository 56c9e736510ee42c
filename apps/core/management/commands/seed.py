# apps/core/management/commands/seed.py

from django.core.management.base import BaseCommand
from django.db import transaction

from apps.board.sync.conf import SyncConfig
from apps.board.sync.positions import PositionAllocator
from apps.core.models import Board, Tarefa, Usuario


TAREFAS_DEMO = {
    'A Fazer': ['Definir escopo da sprint', 'Revisar backlog', 'Mapear dependências'],
    'Em Progresso': ['Implementar arrastar e soltar', 'Configurar WebSocket'],
    'Em Revisão': ['Ajustar limites WIP'],
    'Concluído': ['Criar board inicial'],
}


class Command(BaseCommand):
    help = 'Cria usuário e board de demonstração com tarefas posicionadas'

    def add_arguments(self, parser):
        parser.add_argument('--username', default='demo', help='Usuário dono do board demo')
        parser.add_argument('--password', default='demo12345', help='Senha do usuário demo')

    @transaction.atomic
    def handle(self, *args, **options):
        self.stdout.write('🌱 Populando banco com dados demo...')

        usuario, criado = Usuario.objects.get_or_create(
            username=options['username'],
            defaults={'email': f"{options['username']}@fluxo.local", 'tipo': 'gerente'}
        )
        if criado:
            usuario.set_password(options['password'])
            usuario.save()
            self.stdout.write(f"  👤 Usuário {usuario.username} criado")

        if Board.objects.filter(dono=usuario, titulo='Board Demo').exists():
            self.stdout.write(self.style.WARNING('⚠️  Board demo já existe, nada a fazer'))
            return

        # O signal de criação gera as listas padrão
        board = Board.objects.create(titulo='Board Demo', descricao='Board de demonstração', dono=usuario)

        allocator = PositionAllocator.from_config(SyncConfig.from_settings())
        total = 0
        for lista in board.listas.all():
            titulos = TAREFAS_DEMO.get(lista.titulo, [])
            posicoes = allocator.renumber(range(len(titulos)))
            Tarefa.objects.bulk_create([
                Tarefa(titulo=titulo, lista=lista, posicao=posicoes[idx], criado_por=usuario)
                for idx, titulo in enumerate(titulos)
            ])
            total += len(titulos)

        self.stdout.write(self.style.SUCCESS(
            f'✅ Board "{board.titulo}" (id {board.id}) criado com {total} tarefas\n'
            f'🔑 Acesse com: {usuario.username}/{options["password"]}'
        ))
