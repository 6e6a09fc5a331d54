############################################################
#
# labchain-directory - LAB Chain Network Directory and Faucet Portal
#
# __init__.py: Services package exports
#
# Luke Sheneman
# Research Computing and Data Services (RCDS)
# Institute for Interdisciplinary Data Sciences (IIDS)
# University of Idaho
# sheneman@uidaho.edu
#
############################################################

"""Workflow services for the LAB Chain directory."""

from backend.app.services.accounts import AccountService
from backend.app.services.approval import ApprovalEngine
from backend.app.services.duplicates import DuplicateChecker
from backend.app.services.ledger import RequestKind, RequestLedger
from backend.app.services.notifier import EmailNotifier, Notifier, NullNotifier

__all__ = [
    "AccountService",
    "ApprovalEngine",
    "DuplicateChecker",
    "EmailNotifier",
    "Notifier",
    "NullNotifier",
    "RequestKind",
    "RequestLedger",
]
