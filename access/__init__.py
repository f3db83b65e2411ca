"""Access-control application for the hospital backend.

This package contains models, services, views and route registrations
for roles, staff role assignments, temporary permissions, permission
requests and permission analytics.
"""
