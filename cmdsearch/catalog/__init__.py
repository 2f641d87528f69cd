"""
Command Catalog Management

Modules:
    manager  — Create/update/delete with embedding consistency, duplicate
               detection and integrity validation
"""
