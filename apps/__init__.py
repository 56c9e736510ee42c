# apps/__init__.py

"""
Fluxo Board - Aplicações Django

Este pacote contém todas as aplicações do sistema:
- core: Models principais, autenticação e permissões
- board: API de tarefas, WebSockets e motor de sincronização
"""

__version__ = '0.1.0'
