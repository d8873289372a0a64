"""Voucher claim reconciliation package."""

from .reconciler import ClaimReconciler, CredentialResolver, Notifier

__all__ = ["ClaimReconciler", "CredentialResolver", "Notifier"]
