# apps/board/urls.py

from django.urls import path
from . import views

app_name = 'board'

urlpatterns = [
    # Autenticação
    path('auth/token/', views.obter_token, name='obter_token'),

    # Boards e colaboradores
    path('boards/', views.boards, name='boards'),
    path('boards/<int:board_id>/', views.board_detalhe, name='board_detalhe'),
    path('boards/<int:board_id>/members/', views.membros_do_board, name='membros_do_board'),
    path('boards/<int:board_id>/members/<int:usuario_id>/', views.membro_do_board, name='membro_do_board'),

    # Listas
    path('boards/<int:board_id>/lists/', views.listas_do_board, name='listas_do_board'),
    path('lists/<int:lista_id>/', views.lista_detalhe, name='lista_detalhe'),
    path('lists/<int:lista_id>/move/', views.mover_lista, name='mover_lista'),

    # Tarefas
    path('lists/<int:lista_id>/tasks/', views.tarefas_da_lista, name='tarefas_da_lista'),
    path('tasks/<int:tarefa_id>/', views.tarefa_detalhe, name='tarefa_detalhe'),

    # Drag-and-drop
    path('tasks/<int:tarefa_id>/move/', views.mover_tarefa, name='mover_tarefa'),
]
