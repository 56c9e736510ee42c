# apps/board/__init__.py

"""
Board - API e motor de sincronização do Fluxo Board

Funcionalidades:
- API JSON de listas e tarefas com movimentação serializada por lista
- WebSockets para eventos em tempo real
- Motor cliente (sync) com movimentos otimistas e reconciliação
"""
