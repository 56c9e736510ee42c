# apps/core/admin.py

from django.contrib import admin, messages
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from django.utils.html import format_html

from .models import Usuario, Board, Lista, Tarefa


@admin.register(Usuario)
class UsuarioAdmin(BaseUserAdmin):
    """Admin customizado para o modelo Usuario"""

    list_display = [
        'username', 'email', 'get_full_name', 'tipo_badge',
        'is_active', 'date_joined'
    ]
    list_filter = ['tipo', 'is_staff', 'is_active', 'date_joined']
    search_fields = ['username', 'first_name', 'last_name', 'email']
    ordering = ['-date_joined']

    fieldsets = BaseUserAdmin.fieldsets + (
        ('Informações Adicionais', {
            'fields': ('tipo',)
        }),
    )

    add_fieldsets = BaseUserAdmin.add_fieldsets + (
        ('Informações Adicionais', {
            'fields': ('tipo',)
        }),
    )

    def tipo_badge(self, obj):
        """Exibe o tipo de usuário com badge colorido"""
        cores = {
            'admin': '#EF4444',  # vermelho
            'gerente': '#F59E0B',  # amarelo
            'funcionario': '#3B82F6'  # azul
        }
        cor = cores.get(obj.tipo, '#6B7280')
        return format_html(
            '<span style="background-color: {}; color: white; '
            'padding: 3px 8px; border-radius: 4px; font-size: 11px;">{}</span>',
            cor, obj.get_tipo_display()
        )

    tipo_badge.short_description = 'Tipo'


@admin.register(Board)
class BoardAdmin(admin.ModelAdmin):
    """Admin para boards"""

    list_display = ['titulo', 'dono', 'membros_count', 'listas_count', 'ativo', 'criado_em']
    list_filter = ['ativo']
    search_fields = ['titulo', 'dono__username']
    filter_horizontal = ['membros']

    def membros_count(self, obj):
        return obj.membros.count()

    membros_count.short_description = 'Colaboradores'

    def listas_count(self, obj):
        return obj.listas.count()

    listas_count.short_description = 'Listas'


class TarefaInline(admin.TabularInline):
    model = Tarefa
    extra = 0
    fields = ['titulo', 'posicao', 'prazo', 'criado_por']
    ordering = ['posicao']


@admin.register(Lista)
class ListaAdmin(admin.ModelAdmin):
    """Admin para listas do Kanban"""

    list_display = ['titulo', 'board', 'posicao', 'limite_wip', 'tarefas_count', 'cor_preview']
    list_filter = ['board']
    search_fields = ['titulo', 'board__titulo']
    ordering = ['board', 'posicao']
    actions = ['renumerar_posicoes']

    inlines = [TarefaInline]

    def tarefas_count(self, obj):
        """Conta tarefas na lista"""
        total = obj.tarefas.count()

        # Adicionar indicador de WIP
        if obj.limite_wip > 0 and total >= obj.limite_wip:
            return format_html(
                '<span style="color: red; font-weight: bold;">{}/{}</span>',
                total, obj.limite_wip
            )
        elif obj.limite_wip > 0:
            return f"{total}/{obj.limite_wip}"
        return total

    tarefas_count.short_description = 'Tarefas/WIP'

    def cor_preview(self, obj):
        """Preview da cor da lista"""
        return format_html(
            '<div style="width: 20px; height: 20px; background-color: {}; '
            'border: 1px solid #ccc; border-radius: 3px;"></div>',
            obj.cor
        )

    cor_preview.short_description = 'Cor'

    @admin.action(description='Renumerar posições das tarefas')
    def renumerar_posicoes(self, request, queryset):
        from apps.board.services import renumerar_lista

        for lista in queryset:
            renumerar_lista(lista)
        messages.success(request, f'{queryset.count()} lista(s) renumerada(s)')


@admin.register(Tarefa)
class TarefaAdmin(admin.ModelAdmin):
    """Admin para tarefas"""

    list_display = ['titulo', 'lista', 'posicao', 'prazo', 'status_prazo', 'atualizado_em']
    list_filter = ['lista__board', 'lista']
    search_fields = ['titulo', 'descricao']
    ordering = ['lista', 'posicao']
    readonly_fields = ['ultima_intencao', 'criado_em', 'atualizado_em']

    def status_prazo(self, obj):
        """Indicador de prazo"""
        if not obj.prazo:
            return '-'
        if obj.esta_atrasada():
            return format_html('<span style="color: red;">⚠️ Atrasada</span>')
        return format_html('<span style="color: green;">✓ No prazo</span>')

    status_prazo.short_description = 'Prazo'
