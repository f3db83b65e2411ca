"""
Permission analytics.

Read-only aggregations over role assignments and temporary permissions:
per-user and system-wide usage, per-department distribution, a heuristic
risk score per permission and threshold-based optimisation suggestions.
None of this is consulted for access decisions.
"""
from __future__ import annotations

from collections import defaultdict
from datetime import timedelta
from typing import Dict, List

from django.db.models import Prefetch
from django.utils import timezone

from access.models import Department, Role, StaffMember, StaffRoleAssignment
from access.services.permissions import (
    active_assignments,
    active_temporary_permissions,
    get_user_permissions,
)

SENSITIVE_KEYWORDS = ('delete', 'admin', 'system', 'config', 'audit')
HIGH_USAGE_ASSIGNMENTS = 10

RISK_WEIGHTS = {
    'sensitiveOperation': 40,
    'hasTemporaryGrants': 20,
    'highUsage': 15,
    'broadScope': 25,
}

UNDERUSED_DAILY = 0.1
UNDERUSED_TOTAL = 5
OVERUSED_DAILY = 10
TEMPORARY_RATIO = 0.5


def get_user_permission_usage(user_id, days: int = 30) -> dict:
    effective = get_user_permissions(user_id)
    now = timezone.now()
    temporary = list(active_temporary_permissions(now).filter(user_id=user_id))
    assignments = list(
        active_assignments(now).filter(staff_member__user_id=user_id).select_related('role')
    )

    stats = []
    for permission in effective.to_list():
        temp = next((t for t in temporary if t.permission == permission), None)
        roles = [a for a in assignments if permission in (a.role.permissions or [])]
        if temp:
            source = 'temporary'
        elif roles:
            source = 'role'
        else:
            source = 'direct'
        assigned_at = temp.granted_at if temp else (roles[0].assigned_at if roles else None)
        expires_at = temp.expires_at if temp else (roles[0].expires_at if roles else None)
        stats.append({
            'permission': permission,
            'source': source,
            'assignedAt': assigned_at.isoformat() if assigned_at else None,
            'expiresAt': expires_at.isoformat() if expires_at else None,
            'scope': roles[0].scope if roles else StaffRoleAssignment.SCOPE_GLOBAL,
            'isActive': True,
        })

    return {
        'userId': user_id,
        'isAdmin': effective.admin_all,
        'totalPermissions': len(stats),
        'temporaryPermissions': len(temporary),
        'roleBasedPermissions': len(assignments),
        'permissions': stats,
        'analysisPeriod': f'{days} days',
    }


def get_permission_usage_across_system(days: int = 30) -> dict:
    now = timezone.now()
    start = now - timedelta(days=days)
    usage: Dict[str, dict] = {}

    def entry(permission: str, when) -> dict:
        if permission not in usage:
            usage[permission] = {
                'permission': permission,
                'totalUsage': 0,
                'roleBased': 0,
                'temporary': 0,
                'departments': set(),
                'lastUsed': when,
            }
        row = usage[permission]
        if when and (row['lastUsed'] is None or when > row['lastUsed']):
            row['lastUsed'] = when
        return row

    assignments = (
        active_assignments(now).filter(assigned_at__gte=start)
        .select_related('role', 'staff_member__department')
    )
    for assignment in assignments:
        dept = assignment.staff_member.department
        for permission in assignment.role.permissions or []:
            row = entry(permission, assignment.assigned_at)
            row['totalUsage'] += 1
            row['roleBased'] += 1
            if dept:
                row['departments'].add(dept.name)

    for grant in active_temporary_permissions(now).filter(granted_at__gte=start):
        row = entry(grant.permission, grant.granted_at)
        row['totalUsage'] += 1
        row['temporary'] += 1

    rows = []
    for row in usage.values():
        rows.append({
            **row,
            'departments': sorted(row['departments']),
            'lastUsed': row['lastUsed'].isoformat() if row['lastUsed'] else None,
            'averageUsagePerDay': round(row['totalUsage'] / days, 2) if days else float(row['totalUsage']),
        })
    rows.sort(key=lambda r: (-r['totalUsage'], r['permission']))

    return {
        'analysisPeriod': f'{days} days',
        'totalPermissions': len(rows),
        'totalUsage': sum(r['totalUsage'] for r in rows),
        'permissions': rows,
    }


def get_department_permission_distribution() -> List[dict]:
    now = timezone.now()
    staff_qs = StaffMember.objects.filter(is_active=True).prefetch_related(
        Prefetch('role_assignments', queryset=active_assignments(now).select_related('role'), to_attr='live_assignments')
    )
    departments = Department.objects.filter(is_active=True).prefetch_related(
        Prefetch('staff_members', queryset=staff_qs, to_attr='live_staff')
    )

    result = []
    for dept in departments:
        permissions = set()
        total = 0
        for staff in dept.live_staff:
            for assignment in staff.live_assignments:
                permissions.update(assignment.role.permissions or [])
                total += 1
        result.append({
            'departmentId': dept.id,
            'departmentName': dept.name,
            'departmentCode': dept.code,
            'staffCount': len(dept.live_staff),
            'totalRoleAssignments': total,
            'uniquePermissions': len(permissions),
            'permissions': sorted(permissions),
        })
    result.sort(key=lambda d: (-d['uniquePermissions'], d['departmentName']))
    return result


def risk_level(score: int) -> str:
    if score >= 80:
        return 'CRITICAL'
    if score >= 60:
        return 'HIGH'
    if score >= 40:
        return 'MEDIUM'
    if score >= 20:
        return 'LOW'
    return 'MINIMAL'


def risk_score(factors: Dict[str, bool]) -> int:
    return min(sum(RISK_WEIGHTS[k] for k, on in factors.items() if on), 100)


def risk_recommendations(factors: Dict[str, bool]) -> List[str]:
    recommendations = []
    if factors.get('sensitiveOperation'):
        recommendations += [
            'Implement additional approval workflows for this permission',
            'Consider requiring MFA for users with this permission',
            'Implement detailed audit logging for this permission',
        ]
    if factors.get('hasTemporaryGrants'):
        recommendations += [
            'Review temporary permission approval process',
            'Implement shorter expiration times for this permission',
            'Add additional validation for temporary grants',
        ]
    if factors.get('highUsage'):
        recommendations += [
            'Monitor usage patterns for unusual activity',
            'Consider implementing rate limiting',
            'Review if this permission is too broad',
        ]
    if factors.get('broadScope'):
        recommendations.append('Consider scoping assignments to a department or service')
    return recommendations


def get_permission_risk_assessment() -> List[dict]:
    now = timezone.now()
    names = set()
    for perms in Role.objects.values_list('permissions', flat=True):
        names.update(perms or [])
    temporary_names = set(active_temporary_permissions(now).values_list('permission', flat=True))
    names |= temporary_names

    assignment_counts: Dict[str, int] = defaultdict(int)
    global_names = set()
    for scope, perms in active_assignments(now).values_list('scope', 'role__permissions'):
        for p in perms or []:
            assignment_counts[p] += 1
            if scope == StaffRoleAssignment.SCOPE_GLOBAL:
                global_names.add(p)

    assessment = []
    for name in names:
        factors = {
            'sensitiveOperation': any(k in name.lower() for k in SENSITIVE_KEYWORDS),
            'hasTemporaryGrants': name in temporary_names,
            'highUsage': assignment_counts[name] > HIGH_USAGE_ASSIGNMENTS,
            'broadScope': name in global_names,
        }
        score = risk_score(factors)
        assessment.append({
            'permission': name,
            'riskScore': score,
            'riskLevel': risk_level(score),
            'riskFactors': factors,
            'recommendations': risk_recommendations(factors),
        })
    assessment.sort(key=lambda r: (-r['riskScore'], r['permission']))
    return assessment


def get_permission_optimization_suggestions(days: int = 90) -> List[dict]:
    rows = get_permission_usage_across_system(days)['permissions']
    suggestions = []

    underused = [r for r in rows if r['averageUsagePerDay'] < UNDERUSED_DAILY and r['totalUsage'] < UNDERUSED_TOTAL]
    if underused:
        suggestions.append({
            'type': 'UNDERUSED_PERMISSIONS',
            'title': 'Underused Permissions Detected',
            'description': f'{len(underused)} permissions are rarely used',
            'severity': 'MEDIUM',
            'permissions': [r['permission'] for r in underused],
            'recommendations': [
                'Consider removing these permissions from roles if they are not essential',
                'Review if these permissions are still needed in the system',
                'Check if users are aware of these permissions',
            ],
        })

    overused = [r for r in rows if r['averageUsagePerDay'] > OVERUSED_DAILY]
    if overused:
        suggestions.append({
            'type': 'OVERUSED_PERMISSIONS',
            'title': 'Overused Permissions Detected',
            'description': f'{len(overused)} permissions are used very frequently',
            'severity': 'LOW',
            'permissions': [r['permission'] for r in overused],
            'recommendations': [
                'These permissions might be too broad - consider splitting into more specific ones',
                'Review if these permissions are being used appropriately',
                'Consider implementing additional validation for these permissions',
            ],
        })

    high_temp = [r for r in rows if r['temporary'] > r['roleBased'] * TEMPORARY_RATIO]
    if high_temp:
        suggestions.append({
            'type': 'HIGH_TEMPORARY_USAGE',
            'title': 'High Temporary Permission Usage',
            'description': f'{len(high_temp)} permissions are frequently granted temporarily',
            'severity': 'MEDIUM',
            'permissions': [r['permission'] for r in high_temp],
            'recommendations': [
                'Consider adding these permissions to appropriate roles',
                'Review if the approval process for temporary permissions is too restrictive',
                'Analyze why these permissions need to be temporary',
            ],
        })
    return suggestions


def get_dashboard(days: int = 30) -> dict:
    system_usage = get_permission_usage_across_system(days)
    distribution = get_department_permission_distribution()
    risk = get_permission_risk_assessment()
    suggestions = get_permission_optimization_suggestions()
    return {
        'systemUsage': system_usage,
        'departmentDistribution': distribution,
        'riskAssessment': risk,
        'optimizationSuggestions': suggestions,
        'summary': {
            'totalPermissions': system_usage['totalPermissions'],
            'totalUsage': system_usage['totalUsage'],
            'departmentsAnalyzed': len(distribution),
            'highRiskPermissions': sum(1 for r in risk if r['riskLevel'] in ('HIGH', 'CRITICAL')),
            'suggestionsCount': len(suggestions),
        },
    }
