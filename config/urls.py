# config/urls.py

from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    # Admin
    path('admin/', admin.site.urls),

    # API JSON
    path('api/', include('apps.board.urls')),
]

# Customizar títulos do admin
admin.site.site_header = 'Fluxo Board Admin'
admin.site.site_title = 'Fluxo Board'
admin.site.index_title = 'Administração do Sistema'
