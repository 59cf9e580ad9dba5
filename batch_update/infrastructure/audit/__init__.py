"""Audit infrastructure components.

This package provides the change audit logger that records field-level changes
written by batch updates.
"""

from batch_update.infrastructure.audit.change_audit_logger import ChangeAuditLogger

__all__ = ['ChangeAuditLogger']
