#!/usr/bin/env python
"""
Django's command-line utility for administrative tasks.

Fluxo Board - API de tarefas com movimentação colaborativa
"""

import os
import sys


def main():
    """Run administrative tasks."""

    # Configuração padrão para desenvolvimento
    os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings.development')

    try:
        from django.core.management import execute_from_command_line
    except ImportError as exc:
        raise ImportError(
            "Couldn't import Django. Are you sure it's installed and "
            "available on your PYTHONPATH environment variable? Did you "
            "forget to activate a virtual environment?"
        ) from exc

    # Comando de setup inicial
    if len(sys.argv) > 1 and sys.argv[1] == 'setup':
        print("🚀 Configurando Fluxo Board...")

        print("📊 Aplicando migrações...")
        execute_from_command_line([sys.argv[0], 'migrate'])

        print("🌱 Populando banco com dados demo...")
        execute_from_command_line([sys.argv[0], 'seed'])

        print("✅ Setup concluído!")
        return

    execute_from_command_line(sys.argv)


if __name__ == '__main__':
    main()
