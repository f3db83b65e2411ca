"""Read-only permission analytics endpoints (``view_permission_analytics``)."""
from __future__ import annotations

from django.conf import settings
from rest_framework import serializers
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from access.permissions import RequirePermissions
from access.services import analytics

ANALYTICS = RequirePermissions(['view_permission_analytics'])


class PeriodQuerySerializer(serializers.Serializer):
    days = serializers.IntegerField(min_value=1, max_value=3650, required=False)


def _days(request, default=None) -> int:
    q = PeriodQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    return q.validated_data.get('days') or default or getattr(settings, 'PERMISSION_ANALYTICS_DAYS', 30)


@api_view(['GET'])
@permission_classes([IsAuthenticated, ANALYTICS])
def user_usage(request, user_id: int):
    return Response(analytics.get_user_permission_usage(user_id, _days(request)))


@api_view(['GET'])
@permission_classes([IsAuthenticated, ANALYTICS])
def system_usage(request):
    return Response(analytics.get_permission_usage_across_system(_days(request)))


@api_view(['GET'])
@permission_classes([IsAuthenticated, ANALYTICS])
def department_distribution(request):
    return Response(analytics.get_department_permission_distribution())


@api_view(['GET'])
@permission_classes([IsAuthenticated, ANALYTICS])
def risk_assessment(request):
    return Response(analytics.get_permission_risk_assessment())


@api_view(['GET'])
@permission_classes([IsAuthenticated, ANALYTICS])
def optimization_suggestions(request):
    return Response(analytics.get_permission_optimization_suggestions(_days(request, default=90)))


@api_view(['GET'])
@permission_classes([IsAuthenticated, ANALYTICS])
def dashboard(request):
    return Response(analytics.get_dashboard(_days(request)))
