"""
URL configuration for fleet_backend project.
"""
from django.contrib import admin
from django.urls import path, include
from django.http import JsonResponse
from drf_spectacular.views import SpectacularAPIView, SpectacularSwaggerView, SpectacularRedocView

from utils.mongo import is_mongodb_available


def api_root(request):
    """Root API endpoint showing available endpoints."""
    return JsonResponse({
        'message': 'Fleet Scheduling API',
        'version': '1.0',
        'api_logging': 'enabled' if is_mongodb_available() else 'unavailable',
        'documentation': {
            'swagger_ui': '/api/docs/',
            'redoc': '/api/docs/redoc/',
            'openapi_schema': '/api/schema/',
        },
        'endpoints': {
            'auth': '/api/token/, /api/token/refresh/, /api/profile/',
            'schedules': '/api/schedules/, /api/schedules/flagged/, /api/schedules/check-conflicts/',
            'fleet': '/api/fleet/routes/, /api/fleet/buses/assignable/, /api/fleet/maintenance/due/',
        }
    })


urlpatterns = [
    path('', api_root, name='api_root'),
    path('admin/', admin.site.urls),

    # API Documentation (Swagger UI)
    path('api/schema/', SpectacularAPIView.as_view(), name='schema'),
    path('api/docs/', SpectacularSwaggerView.as_view(url_name='schema'), name='swagger-ui'),
    path('api/docs/redoc/', SpectacularRedocView.as_view(url_name='schema'), name='redoc'),

    # API Endpoints
    path('api/', include('core.urls')),
    path('api/fleet/', include('fleet.urls')),
    path('api/schedules/', include('schedules.urls')),
]
