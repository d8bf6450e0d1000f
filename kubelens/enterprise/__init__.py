"""RBAC auditing and namespace security scanning."""