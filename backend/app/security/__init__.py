############################################################
#
# labchain-directory - LAB Chain Network Directory and Faucet Portal
#
# __init__.py: Security utilities package exports
#
# Luke Sheneman
# Research Computing and Data Services (RCDS)
# Institute for Interdisciplinary Data Sciences (IIDS)
# University of Idaho
# sheneman@uidaho.edu
#
############################################################

"""Security utilities for the LAB Chain directory."""

from backend.app.security.password_hash import hash_password, needs_rehash, verify_password
from backend.app.security.sessions import (
    SessionManager,
    generate_session_token,
    parse_cookie_header,
)

__all__ = [
    "hash_password",
    "needs_rehash",
    "verify_password",
    "SessionManager",
    "generate_session_token",
    "parse_cookie_header",
]
