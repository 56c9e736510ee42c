# apps/core/signals.py

from django.db.models.signals import post_save
from django.dispatch import receiver

from .models import Board


@receiver(post_save, sender=Board)
def criar_listas_padrao(sender, instance, created, **kwargs):
    """
    Cria listas padrão quando um novo board é criado
    APENAS se o board ainda não tem listas
    """
    if created and not instance.listas.exists():
        instance.criar_listas_padrao()
