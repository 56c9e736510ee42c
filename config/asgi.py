# config/asgi.py

import os
from django.core.asgi import get_asgi_application
from channels.routing import ProtocolTypeRouter, URLRouter
from channels.auth import AuthMiddlewareStack

# Configurar Django settings
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings.development')

# Importar URLs de WebSocket depois de configurar Django
django_asgi_app = get_asgi_application()

from apps.board.routing import websocket_urlpatterns  # noqa: E402
from apps.core.middleware import WebSocketTokenMiddleware  # noqa: E402

# Configuração ASGI
application = ProtocolTypeRouter({
    # HTTP tradicional (API JSON e admin)
    "http": django_asgi_app,

    # WebSocket com autenticação por sessão ou ?token=
    "websocket": AuthMiddlewareStack(
        WebSocketTokenMiddleware(URLRouter(websocket_urlpatterns))
    ),
})
