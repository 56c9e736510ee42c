# apps/core/__init__.py

"""
Core - Aplicação principal do Fluxo Board

Contém:
- Models (Usuario, Board, Lista, Tarefa)
- Autenticação por token Bearer e permissões
- Comando de seed para desenvolvimento
"""
