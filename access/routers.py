"""
URL mappings for the permission API.

Paths carry no trailing slash.  Multi-method endpoints dispatch on the
HTTP method inside a single view function.
"""
from django.urls import path, include

from .auth_views import login_view, jwt_refresh_view, jwt_logout_view
from .views import analytics, health
from .views.roles import (
    roles,
    role_detail,
    role_by_code,
    role_stats,
    assign_role,
    remove_role,
    staff_roles,
    cleanup_role_assignments,
)
from .views.temporary_permissions import (
    temporary_permissions,
    user_temporary_permissions,
    temporary_permission_detail,
    extend_temporary_permission,
    revoke_temporary_permission,
    cleanup_temporary_permissions,
)
from .views.permission_requests import (
    permission_requests,
    permission_request_stats,
    permission_request_detail,
    approve_permission_request,
    reject_permission_request,
    cancel_permission_request,
    cleanup_permission_requests,
)
from .views.permission_templates import (
    permission_templates,
    template_categories,
    templates_by_category,
    template_by_name,
    template_detail,
    permission_presets,
    preset_detail,
    preset_permissions,
)
from .views.users import user_permissions


urlpatterns = [
    path('metrics', include('django_prometheus.urls')),
    path('healthz', health.healthz),
    # Authentication
    path('api/auth/login', login_view),
    path('api/auth/refresh', jwt_refresh_view),
    path('api/auth/logout', jwt_logout_view),
    # Roles and assignments
    path('api/roles', roles),
    path('api/roles/cleanup', cleanup_role_assignments),
    path('api/roles/code/<str:code>', role_by_code),
    path('api/roles/stats/<int:role_id>', role_stats),
    path('api/roles/staff/<int:staff_id>', staff_roles),
    path('api/roles/staff/<int:staff_id>/assign', assign_role),
    path('api/roles/staff/<int:staff_id>/roles/<int:role_id>', remove_role),
    path('api/roles/<int:role_id>', role_detail),
    # Temporary permissions
    path('api/temporary-permissions', temporary_permissions),
    path('api/temporary-permissions/cleanup', cleanup_temporary_permissions),
    path('api/temporary-permissions/user/<int:user_id>', user_temporary_permissions),
    path('api/temporary-permissions/<int:permission_id>', temporary_permission_detail),
    path('api/temporary-permissions/<int:permission_id>/extend', extend_temporary_permission),
    path('api/temporary-permissions/<int:permission_id>/revoke', revoke_temporary_permission),
    # Permission requests
    path('api/permission-requests', permission_requests),
    path('api/permission-requests/stats', permission_request_stats),
    path('api/permission-requests/cleanup', cleanup_permission_requests),
    path('api/permission-requests/<int:request_id>', permission_request_detail),
    path('api/permission-requests/<int:request_id>/approve', approve_permission_request),
    path('api/permission-requests/<int:request_id>/reject', reject_permission_request),
    path('api/permission-requests/<int:request_id>/cancel', cancel_permission_request),
    # Permission templates and presets
    path('api/permission-templates', permission_templates),
    path('api/permission-templates/categories', template_categories),
    path('api/permission-templates/category/<str:category>', templates_by_category),
    path('api/permission-templates/name/<str:name>', template_by_name),
    path('api/permission-templates/presets', permission_presets),
    path('api/permission-templates/presets/<int:preset_id>', preset_detail),
    path('api/permission-templates/presets/<int:preset_id>/permissions', preset_permissions),
    path('api/permission-templates/<int:template_id>', template_detail),
    # Analytics
    path('api/permission-analytics/user/<int:user_id>', analytics.user_usage),
    path('api/permission-analytics/system-usage', analytics.system_usage),
    path('api/permission-analytics/department-distribution', analytics.department_distribution),
    path('api/permission-analytics/risk-assessment', analytics.risk_assessment),
    path('api/permission-analytics/optimization-suggestions', analytics.optimization_suggestions),
    path('api/permission-analytics/dashboard', analytics.dashboard),
    # Direct user permissions
    path('api/users/<int:user_id>/permissions', user_permissions),
]
