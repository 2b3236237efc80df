"""
URL configuration for the mediaqueue project.
"""

from django.contrib import admin
from django.urls import path

from uploads.views import (
    task_cancel_view,
    task_detail_view,
    task_list_view,
    task_retry_view,
    task_status_stream,
)

admin.site.site_header = 'Media Queue Administration'
admin.site.site_title = 'Media Queue admin'


urlpatterns = [
    path('admin/', admin.site.urls),
    path('tasks/', task_list_view, name='task_list'),
    path('tasks/<str:task_id>/', task_detail_view, name='task_detail'),
    path('tasks/<str:task_id>/stream/', task_status_stream, name='task_status_stream'),
    path('tasks/<str:task_id>/retry/', task_retry_view, name='task_retry'),
    path('tasks/<str:task_id>/cancel/', task_cancel_view, name='task_cancel'),
]
