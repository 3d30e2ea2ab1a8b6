from django.urls import path, re_path

from . import views
from .services.ai.schemas import OperationType

app_name = 'proxy'

urlpatterns = [
    path('health', views.HealthView.as_view(), name='health'),
    path(
        'api/ai/insights',
        views.OperationView.as_view(operation=OperationType.INSIGHT),
        name='insights',
    ),
    path(
        'api/ai/workout',
        views.OperationView.as_view(operation=OperationType.WORKOUT_GENERATION),
        name='workout',
    ),
    path('api/ai/tip', views.OperationView.as_view(operation=OperationType.TIP), name='tip'),
    path(
        'api/ai/parse',
        views.OperationView.as_view(
            operation=OperationType.PARSE,
            default_system_prompt=views.PARSE_SYSTEM_PROMPT,
        ),
        name='parse',
    ),
    re_path(r'^.*$', views.NotFoundView.as_view(), name='not-found'),
]
