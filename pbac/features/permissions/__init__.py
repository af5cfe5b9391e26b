"""
Permission management feature module.

Implements guard-scoped Role-Based Access Control (RBAC): permissions, roles,
role-permission grants, and direct role/permission grants for any subject.
"""
